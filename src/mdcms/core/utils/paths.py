"""Content path helpers: normalization, category segments and reserved names"""

import posixpath

from mdcms.errors import AppError


DOC_EXT = ".mdx"
DOC_EXTENSIONS = (".mdx", ".md")
KEEP_FILE = ".keep"
ARCHIVED = "archived"
DEFAULT_CATEGORY = "default"
DRAFTS_CATEGORY = "drafts"


def normalize(path: str) -> str:
    """Collapse slashes and strip the leading/trailing ones. Rejects '.' and '..' segments."""
    parts = [p for p in path.replace("\\", "/").strip().split("/") if p]
    if any(p in (".", "..") for p in parts):
        raise AppError.invalid_request(f"Invalid path: {path}")
    return "/".join(parts)


def is_doc(name: str) -> bool:
    return name.lower().endswith(DOC_EXTENSIONS)


def ensure_ext(path: str) -> str:
    return path if is_doc(path) else f"{path}{DOC_EXT}"


def strip_ext(path: str) -> str:
    for ext in DOC_EXTENSIONS:
        if path.lower().endswith(ext):
            return path[: -len(ext)]
    return path


def join(*parts: str) -> str:
    return "/".join(p.strip("/") for p in parts if p and p.strip("/"))


def relative_to_root(path: str, root: str) -> str:
    """Normalize a document path and drop the content root prefix if present."""
    rel = normalize(path)
    if root and (rel == root or rel.startswith(f"{root}/")):
        rel = rel[len(root):].lstrip("/")
    if not rel:
        raise AppError.invalid_request("Path is required")
    return ensure_ext(rel)


def first_segment(path: str) -> str:
    return path.split("/", 1)[0]


def basename(path: str) -> str:
    return posixpath.basename(path)


def parent(path: str) -> str:
    return posixpath.dirname(path)


def is_archived(rel_path: str) -> bool:
    return first_segment(rel_path) == ARCHIVED


def validate_category(name: str) -> str:
    """Return the trimmed category name; must be one non-empty path segment."""
    name = (name or "").strip().strip("/")
    if not name:
        raise AppError.invalid_request("Category is required")
    if "/" in name or name in (".", ".."):
        raise AppError.invalid_request("Category must be a single segment")
    return name
