"""Category handlers: list, create and delete with document handling modes"""

import logging
from typing import Any, Optional

from mdcms.core.utils import paths
from mdcms.errors import AppError
from mdcms.services.context import AppContext
from mdcms.services.util import envelope, require_admin

logger = logging.getLogger(__name__)

DELETE_MODES = ("move", "delete")


@envelope("categories")
async def list_categories(ctx: AppContext) -> dict[str, Any]:
    """Category names; the archive folder is hidden and the default category always present."""
    names = [c for c in await ctx.content.list_all_categories() if c != paths.ARCHIVED]
    if paths.DEFAULT_CATEGORY not in names:
        names.insert(0, paths.DEFAULT_CATEGORY)
    return {"items": names}


@envelope("categories")
async def create_category(ctx: AppContext, name: Any, is_admin: bool = False) -> dict[str, Any]:
    require_admin(is_admin)
    name = paths.validate_category(name if isinstance(name, str) else "")
    created = await ctx.content.create_category(name)
    return {"name": name, "created": created}


@envelope("categories")
async def delete_category(
    ctx: AppContext,
    name: Any,
    mode: Optional[str] = None,
    is_admin: bool = False,
    ) -> dict[str, Any]:
    """Delete a category.

    A category holding documents needs a mode: `move` re-files them under the
    default category, `delete` removes them. Empty categories need none.
    """
    require_admin(is_admin)
    name = paths.validate_category(name if isinstance(name, str) else "")
    if name == paths.DEFAULT_CATEGORY:
        raise AppError.forbidden("Default category cannot be deleted")
    if mode and mode not in DELETE_MODES:
        raise AppError.invalid_request("Unsupported mode")

    store = ctx.content
    docs = await store.list_docs_by_category(name)
    if docs and not mode:
        raise AppError.invalid_request("Mode is required when category contains documents")

    moved = removed = 0
    partial: list[str] = []
    if mode == "move":
        await store.create_category(paths.DEFAULT_CATEGORY)
        for doc in docs:
            result = await store.change_doc_category(doc.path, paths.DEFAULT_CATEGORY)
            moved += 1
            if result.partial:
                partial.append(doc.path)
    elif mode == "delete":
        for doc in docs:
            await store.delete_doc(doc.path, doc.sha, f"chore: delete {doc.path}")
            removed += 1

    await store.delete_category(name)
    if partial:
        logger.warning(f"category {name}: {len(partial)} document(s) left at both paths")
    return {"name": name, "deleted": True, "moved": moved, "removed": removed, "partial": partial}
