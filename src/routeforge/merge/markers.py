from __future__ import annotations

import re

from routeforge.domain.errors import MarkerNotFoundError, MergeConflictError, RenderError

# Wire contract between generations: previously generated files are located by
# this exact text. Changing it orphans every existing register file.
INSERT_POINT = "# INSERT_POINT: DO NOT DELETE THIS LINE!"
INSERT_POINT_PATTERN = re.compile(r"^[ \t]*" + re.escape(INSERT_POINT) + r"[ \t]*$")


def _indent_of(line: str) -> str:
    return line[: len(line) - len(line.lstrip(" \t"))]


def find_marker(lines: list[str], path: str = "") -> int:
    """Index of the single marker line. Raises if absent or repeated."""
    hits = [i for i, line in enumerate(lines) if INSERT_POINT_PATTERN.match(line.rstrip("\r\n"))]
    if not hits:
        raise MarkerNotFoundError(f"insertion marker {INSERT_POINT!r} not found", path=path)
    if len(hits) > 1:
        raise MergeConflictError(
            f"insertion marker appears {len(hits)} times (lines {', '.join(str(i + 1) for i in hits)})",
            path=path,
        )
    return hits[0]


def hooks_above(lines: list[str], marker_idx: int) -> list[str]:
    """
    Hook statements directly above the marker: the contiguous non-blank lines
    sharing the marker's indentation, stripped, top to bottom.
    """
    indent = _indent_of(lines[marker_idx])
    out: list[str] = []
    i = marker_idx - 1
    while i >= 0:
        line = lines[i].rstrip("\r\n")
        if not line.strip() or _indent_of(line) != indent:
            break
        out.append(line.strip())
        i -= 1
    out.reverse()
    return out


def merge_at_marker(existing: str, fresh: str, path: str = "") -> str:
    """
    Insert hooks from ``fresh`` that ``existing`` lacks directly above the
    existing marker. Everything else in ``existing`` is kept byte for byte.
    """
    lines = existing.splitlines(keepends=True)
    idx = find_marker(lines, path=path)

    fresh_lines = fresh.splitlines()
    try:
        fidx = find_marker(fresh_lines, path=path)
    except MarkerNotFoundError as exc:
        raise RenderError(f"fresh render has no insertion marker: {exc.message}", path=path) from exc

    present = set(hooks_above(lines, idx))
    new_hooks: list[str] = []
    for hook in hooks_above(fresh_lines, fidx):
        if hook not in present:
            present.add(hook)
            new_hooks.append(hook)

    if not new_hooks:
        return existing

    marker_line = lines[idx]
    indent = _indent_of(marker_line)
    newline = marker_line[len(marker_line.rstrip("\r\n")):] or "\n"
    inserted = [f"{indent}{hook}{newline}" for hook in new_hooks]
    return "".join(lines[:idx] + inserted + lines[idx:])
