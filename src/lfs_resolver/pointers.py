"""Git LFS pointer file parsing and rendering."""

from __future__ import annotations

import re
from pathlib import Path

from lfs_resolver.errors import MalformedPointer
from lfs_resolver.models import Asset, PointerRecord

POINTER_SPEC_VERSION = "https://git-lfs.github.com/spec/v1"
DEFAULT_OID_ALGO = "sha256"
_CONTENT_ID_RE = re.compile(r"^[0-9a-f]+$")
_ALGO_RE = re.compile(r"^[a-z0-9]+$")


def parse_pointer(raw_text: str, *, path: str) -> PointerRecord:
    """Parse a pointer body into its content id and size.

    Line 2 carries ``oid <algo>:<content id>`` and line 3 ``size <bytes>``.
    Anything that does not match that shape raises ``MalformedPointer``.
    """

    lines = raw_text.splitlines()
    if len(lines) < 3:
        raise MalformedPointer(
            message=f"Pointer has {len(lines)} line(s), expected at least 3",
            file_name=path,
        )
    return PointerRecord(
        path=path,
        content_id=_parse_oid_line(lines[1], path=path),
        size_bytes=_parse_size_line(lines[2], path=path),
    )


def render_pointer(content_id: str, size_bytes: int, *, algo: str = DEFAULT_OID_ALGO) -> str:
    """Render canonical pointer text for a content id and size."""

    return f"version {POINTER_SPEC_VERSION}\noid {algo}:{content_id}\nsize {size_bytes}\n"


def read_pointer(path: Path, *, source_root: Path) -> Asset:
    """Read a pointer file and return it as an ``Asset`` named relative to ``source_root``."""

    file_name = _relative_name(path, source_root)
    try:
        raw_text = path.read_bytes().decode("utf-8")
    except UnicodeDecodeError as error:
        raise MalformedPointer(
            message="File is not a text pointer (was the LFS object checked out?)",
            file_name=file_name,
        ) from error
    except OSError as error:
        raise MalformedPointer(
            message=f"Cannot read pointer file: {error}",
            file_name=file_name,
        ) from error

    record = parse_pointer(raw_text, path=file_name)
    return Asset(
        file_name=record.path,
        content_id=record.content_id,
        size_bytes=record.size_bytes,
    )


def _parse_oid_line(line: str, *, path: str) -> str:
    key, _, value = line.strip().partition(" ")
    if key != "oid":
        raise MalformedPointer(message=f"Expected oid line, got {line!r}", file_name=path)
    algo, separator, content_id = value.partition(":")
    if not separator or not _ALGO_RE.match(algo):
        raise MalformedPointer(
            message=f"Expected '<algo>:<content id>' in oid line, got {value!r}",
            file_name=path,
        )
    if not _CONTENT_ID_RE.match(content_id):
        raise MalformedPointer(
            message=f"Content id must be lowercase hex, got {content_id!r}",
            file_name=path,
        )
    return content_id


def _parse_size_line(line: str, *, path: str) -> int:
    tokens = line.split()
    if len(tokens) != 2 or tokens[0] != "size":  # noqa: PLR2004
        raise MalformedPointer(message=f"Expected 'size <bytes>', got {line!r}", file_name=path)
    if not (tokens[1].isascii() and tokens[1].isdigit()):
        raise MalformedPointer(
            message=f"Pointer size is not a non-negative integer: {tokens[1]!r}",
            file_name=path,
        )
    return int(tokens[1])


def _relative_name(path: Path, source_root: Path) -> str:
    try:
        return path.relative_to(source_root).as_posix()
    except ValueError:
        return path.as_posix()
