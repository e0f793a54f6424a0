"""Frontmatter codec: a fixed key/value grammar embedded at the top of MDX documents

Values are one of: string, number, boolean or string array. Nested mappings,
multi-line values and the rest of YAML are intentionally not supported.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Union


DELIMITER = "---"

FrontmatterValue = Union[str, int, float, bool, list[str]]

_NUMBER_RE = re.compile(r"^-?\d+(\.\d+)?([eE][+-]?\d+)?$")


@dataclass(frozen=True)
class ParsedDoc:
    meta: dict[str, FrontmatterValue] = field(default_factory=dict)
    body: str = ""


def _unquote(text: str) -> str:
    if len(text) >= 2 and text[0] == text[-1] == '"':
        try:
            return str(json.loads(text))
        except json.JSONDecodeError:
            return text[1:-1]
    if len(text) >= 2 and text[0] == text[-1] == "'":
        return text[1:-1]
    return text


def _parse_array(text: str) -> list[str]:
    """Parse `[a, "b"]`. Anything without a closing bracket parses as []."""
    if not text.endswith("]"):
        return []
    try:
        items = json.loads(text)
        if isinstance(items, list):
            return [str(i) for i in items]
    except json.JSONDecodeError:
        pass
    inner = text[1:-1].strip()
    if not inner:
        return []
    return [v for v in (_unquote(part.strip()) for part in inner.split(",")) if v]


def parse_value(raw: str) -> FrontmatterValue:
    """Parse a single frontmatter value according to the fixed grammar."""
    text = raw.strip()
    if not text:
        return ""
    if text.startswith("["):
        return _parse_array(text)
    if text == "true":
        return True
    if text == "false":
        return False
    if _NUMBER_RE.match(text):
        return int(text) if text.lstrip("-").isdigit() else float(text)
    return _unquote(text)


def parse(source: str) -> ParsedDoc:
    """Split source into (meta, body). Sources without a leading block are returned unchanged."""
    lines = source.split("\n")
    if not lines or lines[0].rstrip("\r").strip() != DELIMITER:
        return ParsedDoc(meta={}, body=source)

    end_idx = None
    for i in range(1, len(lines)):
        if lines[i].rstrip("\r").strip() == DELIMITER:
            end_idx = i
            break
    if end_idx is None:
        return ParsedDoc(meta={}, body=source)

    meta: dict[str, FrontmatterValue] = {}
    for line in lines[1:end_idx]:
        line = line.rstrip("\r")
        if not line.strip() or line.lstrip().startswith("#") or ":" not in line:
            continue
        key, _, value = line.partition(":")
        key = key.strip()
        if key:
            meta[key] = parse_value(value)

    body = "\n".join(lines[end_idx + 1:])
    if body.startswith("\n"):
        body = body[1:]
    return ParsedDoc(meta=meta, body=body)


def _render_value(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(json.dumps(str(v), ensure_ascii=False) for v in value) + "]"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(str(value), ensure_ascii=False)


def serialize(meta: dict[str, Any]) -> str:
    """Render meta as a delimited block. Returns '' when no key has a value."""
    items = [(k, v) for k, v in meta.items() if v is not None]
    if not items:
        return ""
    lines = [f"{k}: {_render_value(v)}" for k, v in items]
    return f"{DELIMITER}\n" + "\n".join(lines) + f"\n{DELIMITER}\n"


def apply(content: str, meta: dict[str, Any]) -> str:
    """Replace content's frontmatter block with one rendered from meta.

    meta fully replaces the previous block; merging is the caller's job.
    """
    body = parse(content).body
    block = serialize(meta)
    return f"{block}\n{body}" if block else body
