"""Patch sets and path translation between directory scopes.

A :class:`PatchSet` is the parsed form of ``git diff --binary`` output: one
:class:`FileChange` per file section, each keeping its raw text so it can be
re-rendered byte for byte. :func:`translate` moves a patch from one directory
scope to another by rewriting only the path-bearing header lines of each
section; hunk bodies and binary payloads are never touched.

Renames are expected to arrive split into a delete and an add (the client
diffs with ``--no-renames``), so a file moved across a scope boundary shows
up as a deletion in one scope and an addition in the other. A rename or copy
section that straddles the boundary cannot be re-expressed without the full
file contents and is dropped with a warning.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)

DIFF_HEADER = "diff --git "
DEV_NULL = "/dev/null"

_BODY_STARTS = ("@@", "GIT binary patch", "Binary files ")
_C_ESCAPES = {"a": 7, "b": 8, "t": 9, "n": 10, "v": 11, "f": 12, "r": 13, '"': 34, "\\": 92}
_C_QUOTES = {value: key for key, value in _C_ESCAPES.items()}


class ChangeKind(Enum):
    ADD = "add"
    MODIFY = "modify"
    DELETE = "delete"
    RENAME = "rename"
    COPY = "copy"


@dataclass(frozen=True)
class FileChange:
    """One file section of a diff."""

    kind: ChangeKind
    old_path: str | None  # None for additions
    new_path: str | None  # None for deletions
    text: str = field(repr=False, default="")

    @property
    def paths(self) -> list[str]:
        return [p for p in (self.old_path, self.new_path) if p is not None]


@dataclass(frozen=True)
class PatchSet:
    """An immutable, ordered collection of file changes."""

    changes: tuple[FileChange, ...] = ()

    @classmethod
    def parse(cls, diff_text: str) -> PatchSet:
        sections: list[list[str]] = []
        for line in _split_lines(diff_text):
            if line.startswith(DIFF_HEADER):
                sections.append([line])
            elif sections:
                sections[-1].append(line)
        return cls(tuple(_parse_section(lines) for lines in sections))

    @property
    def is_empty(self) -> bool:
        return not self.changes

    def __len__(self) -> int:
        return len(self.changes)

    def __iter__(self):
        return iter(self.changes)

    def paths(self) -> list[str]:
        """Every path touched, in order, without duplicates."""
        seen: dict[str, None] = {}
        for change in self.changes:
            for path in change.paths:
                seen.setdefault(path, None)
        return list(seen)

    def render(self) -> str:
        text = "".join(change.text for change in self.changes)
        if text and not text.endswith("\n"):
            text += "\n"
        return text


# --- Scopes ---


def is_under(path: str, scope: str) -> bool:
    """True if ``path`` is ``scope`` or lies beneath it. The empty scope holds everything."""
    return not scope or path == scope or path.startswith(scope + "/")


def rescope(path: str, from_scope: str, to_scope: str) -> str:
    """Strip ``from_scope`` off ``path`` and prefix ``to_scope``.

    A path equal to the scope itself (a single mapped file) lands on
    ``to_scope``, or keeps its base name when ``to_scope`` is the root.
    """
    if not from_scope:
        relative = path
    elif path == from_scope:
        relative = ""
    else:
        relative = path[len(from_scope) + 1:]

    if not relative:
        return to_scope or path.rsplit("/", 1)[-1]
    return f"{to_scope}/{relative}" if to_scope else relative


def translate(patch: PatchSet, from_scope: str, to_scope: str) -> PatchSet:
    """Keep the changes under ``from_scope`` and move them under ``to_scope``.

    Used for land (hub subpath -> repo subpath) and import (repo subpath ->
    hub subpath). A patch with nothing under ``from_scope`` translates to an
    empty patch.
    """
    from_scope = from_scope.strip("/")
    to_scope = to_scope.strip("/")

    kept = []
    for change in patch.changes:
        old_in = change.old_path is not None and is_under(change.old_path, from_scope)
        new_in = change.new_path is not None and is_under(change.new_path, from_scope)
        if not (old_in or new_in):
            continue
        if change.kind in (ChangeKind.RENAME, ChangeKind.COPY) and not (old_in and new_in):
            logger.warning(
                f"Dropping {change.kind.value} {change.old_path} -> {change.new_path}: "
                f"crosses the boundary of '{from_scope}'"
            )
            continue
        kept.append(_retarget(change, from_scope, to_scope))

    return PatchSet(tuple(kept))


def _retarget(change: FileChange, from_scope: str, to_scope: str) -> FileChange:
    old = rescope(change.old_path, from_scope, to_scope) if change.old_path is not None else None
    new = rescope(change.new_path, from_scope, to_scope) if change.new_path is not None else None

    lines = _split_lines(change.text)
    out = [f"{DIFF_HEADER}{quote_path('a/' + (old or new))} {quote_path('b/' + (new or old))}{_eol(lines[0])}"]
    in_header = True
    for line in lines[1:]:
        if in_header and line.startswith(_BODY_STARTS):
            in_header = False
        if not in_header:
            out.append(line)
        elif line.startswith("--- ") and old is not None:
            out.append(f"--- {_label('a/' + old)}{_eol(line)}")
        elif line.startswith("+++ ") and new is not None:
            out.append(f"+++ {_label('b/' + new)}{_eol(line)}")
        elif line.startswith(("rename from ", "copy from ")) and old is not None:
            verb = line.split(" ", 1)[0]
            out.append(f"{verb} from {quote_path(old)}{_eol(line)}")
        elif line.startswith(("rename to ", "copy to ")) and new is not None:
            verb = line.split(" ", 1)[0]
            out.append(f"{verb} to {quote_path(new)}{_eol(line)}")
        else:
            out.append(line)

    return FileChange(kind=change.kind, old_path=old, new_path=new, text="".join(out))


# --- Parsing ---


def _parse_section(lines: list[str]) -> FileChange:
    header_old, header_new = _split_header_paths(lines[0][len(DIFF_HEADER):].rstrip("\n"))
    old_path: str | None = header_old
    new_path: str | None = header_new
    kind = ChangeKind.MODIFY

    for line in lines[1:]:
        if line.startswith(_BODY_STARTS):
            break
        content = line.rstrip("\n")
        if content.startswith("new file mode"):
            kind = ChangeKind.ADD
        elif content.startswith("deleted file mode"):
            kind = ChangeKind.DELETE
        elif content.startswith("rename from "):
            kind, old_path = ChangeKind.RENAME, unquote_path(content[len("rename from "):])
        elif content.startswith("rename to "):
            new_path = unquote_path(content[len("rename to "):])
        elif content.startswith("copy from "):
            kind, old_path = ChangeKind.COPY, unquote_path(content[len("copy from "):])
        elif content.startswith("copy to "):
            new_path = unquote_path(content[len("copy to "):])
        elif content.startswith("--- ") and content[4:] != DEV_NULL:
            old_path = _strip_prefix(unquote_path(content[4:].rstrip("\t")))
        elif content.startswith("+++ ") and content[4:] != DEV_NULL:
            new_path = _strip_prefix(unquote_path(content[4:].rstrip("\t")))

    if kind == ChangeKind.ADD:
        old_path = None
    elif kind == ChangeKind.DELETE:
        new_path = None

    return FileChange(kind=kind, old_path=old_path, new_path=new_path, text="".join(lines))


def _split_header_paths(rest: str) -> tuple[str, str]:
    """Split ``a/<old> b/<new>`` from a ``diff --git`` line."""
    if rest.startswith('"'):
        old, remainder = _read_quoted(rest)
        remainder = remainder.lstrip(" ")
        new = unquote_path(remainder)
        return _strip_prefix(old), _strip_prefix(new)

    if rest.endswith('"'):
        start = rest.index(' "')
        return _strip_prefix(rest[:start]), _strip_prefix(unquote_path(rest[start + 1:]))

    # unquoted and identical on both sides unless it's a rename
    half = (len(rest) - 1) // 2
    first, second = rest[:half], rest[half + 1:]
    if first[2:] == second[2:] and rest[half] == " ":
        return _strip_prefix(first), _strip_prefix(second)

    split = rest.find(" b/")
    if split == -1:
        return _strip_prefix(rest), _strip_prefix(rest)
    return _strip_prefix(rest[:split]), _strip_prefix(rest[split + 1:])


def _strip_prefix(path: str) -> str:
    if path.startswith(("a/", "b/")):
        return path[2:]
    return path


# --- Quoting (git's C-style path quoting) ---


def _read_quoted(text: str) -> tuple[str, str]:
    """Decode a leading ``"..."`` token; return it and the unread remainder."""
    buf = bytearray()
    i = 1
    while i < len(text):
        ch = text[i]
        if ch == '"':
            return buf.decode("utf-8", "surrogateescape"), text[i + 1:]
        if ch == "\\" and i + 1 < len(text):
            nxt = text[i + 1]
            if nxt in "01234567":
                buf.append(int(text[i + 1:i + 4], 8))
                i += 4
                continue
            buf.append(_C_ESCAPES.get(nxt, ord(nxt)))
            i += 2
            continue
        buf.extend(ch.encode("utf-8", "surrogateescape"))
        i += 1
    raise ValueError(f"Unterminated quoted path: {text}")


def unquote_path(text: str) -> str:
    if text.startswith('"'):
        return _read_quoted(text)[0]
    return text


def quote_path(path: str) -> str:
    """Quote a path the way git does when it contains special characters."""
    raw = path.encode("utf-8", "surrogateescape")
    needs_quoting = any(b < 0x20 or b == 0x7F or b in (0x22, 0x5C) for b in raw)
    try:
        path.encode("utf-8")
    except UnicodeEncodeError:
        needs_quoting = True
    if not needs_quoting:
        return path

    out = []
    for b in raw:
        if b in _C_QUOTES:
            out.append("\\" + _C_QUOTES[b])
        elif b < 0x20 or b >= 0x7F:
            out.append(f"\\{b:03o}")
        else:
            out.append(chr(b))
    return '"' + "".join(out) + '"'


def _label(path: str) -> str:
    """A ``---``/``+++`` file label; git appends a tab to names containing spaces."""
    return quote_path(path) + ("\t" if " " in path else "")


def _split_lines(text: str) -> list[str]:
    """Split on ``\\n`` only, keeping line endings (``str.splitlines`` also splits on ``\\r``, ``\\f``...)."""
    if not text:
        return []
    parts = text.split("\n")
    lines = [part + "\n" for part in parts[:-1]]
    if parts[-1]:
        lines.append(parts[-1])
    return lines


def _eol(line: str) -> str:
    return "\n" if line.endswith("\n") else ""
