"""Path normalization for stored and queried paths.

Every path written to or looked up in the index goes through
``normalize_path`` first, so both sides compare in the same canonical form:
forward slashes, relative, no ``.`` segments, ``..`` collapsed.
"""

from __future__ import annotations

import re

_URL_PREFIX = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*://[^/]*/?")
_DRIVE_PREFIX = re.compile(r"^[A-Za-z]:(?=/|$)")


def normalize_path(raw: str | None) -> str:
    """Canonicalize a path taken from disk, a stack frame or a query.

    Strips ``file://`` and ``http(s)://host/`` style prefixes, query strings,
    fragments and Windows drive letters. A trailing ``:line:col`` is kept;
    frame parsing removes it before calling this.

    Never raises. Unresolvable leading ``..`` segments are dropped.
    """
    if not raw:
        return ""

    path = raw.strip().replace("\\", "/")
    path = _URL_PREFIX.sub("", path, count=1)
    path = path.split("?", 1)[0].split("#", 1)[0]
    path = _DRIVE_PREFIX.sub("", path, count=1)

    parts: list[str] = []
    for segment in path.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if parts:
                parts.pop()
            continue
        parts.append(segment)
    return "/".join(parts)


def basename(path: str) -> str:
    """Last segment of a normalized path."""
    return path.rsplit("/", 1)[-1]


def parent_dir_name(path: str) -> str:
    """Name of the directory directly containing the file ('' at the root)."""
    parts = path.split("/")
    return parts[-2] if len(parts) > 1 else ""


def stem(path: str) -> str:
    """Basename without its final extension."""
    name = basename(path)
    dot = name.rfind(".")
    return name[:dot] if dot > 0 else name


def is_segment_suffix(path: str, suffix: str) -> bool:
    """True when ``suffix`` equals ``path`` or ends it on a '/' boundary."""
    if not suffix:
        return False
    return path == suffix or path.endswith("/" + suffix)


def has_segment(path: str, segment: str) -> bool:
    """True when ``segment`` is one of the directory names in ``path``."""
    return bool(segment) and segment in path.split("/")[:-1]
