from __future__ import annotations

import ast
from dataclasses import dataclass

from routeforge.domain.errors import MergeConflictError, RenderError


@dataclass(frozen=True)
class Declaration:
    name: str
    kind: str  # "function" | "class"
    start_line: int  # 1-based; includes decorators and directly preceding comments
    end_line: int


@dataclass(frozen=True)
class ImportStmt:
    key: str  # canonical text (ast.unparse), used for equality
    start_line: int
    end_line: int
    is_future: bool


@dataclass(frozen=True)
class ModuleLayout:
    declarations: tuple[Declaration, ...]
    imports: tuple[ImportStmt, ...]
    header_end_line: int  # last line of the leading comments/docstring block, 0 if none


def _leading_comment_start(lines: list[str], first_line: int) -> int:
    i = first_line - 1  # 1-based line above
    while i >= 1 and lines[i - 1].lstrip().startswith("#"):
        i -= 1
    return i + 1


def _header_end(tree: ast.Module, lines: list[str]) -> int:
    body = tree.body
    if body and isinstance(body[0], ast.Expr) and isinstance(getattr(body[0], "value", None), ast.Constant):
        if isinstance(body[0].value.value, str):
            return body[0].end_lineno or body[0].lineno
    n = 0
    while n < len(lines) and lines[n].lstrip().startswith("#"):
        n += 1
    return n


def scan_module(source: str, path: str = "") -> ModuleLayout:
    """
    Locate top-level declarations and imports with ``ast``.

    Anything that keeps us from pinning down declaration boundaries exactly
    (a syntax error, two top-level definitions with one name) is a
    MergeConflictError: we refuse to guess.
    """
    try:
        tree = ast.parse(source)
    except SyntaxError as exc:
        raise MergeConflictError(f"cannot parse: {exc.msg} (line {exc.lineno})", path=path) from exc

    lines = source.splitlines()
    decls: list[Declaration] = []
    imports: list[ImportStmt] = []
    seen: dict[str, int] = {}

    for node in tree.body:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            first = min([node.lineno] + [d.lineno for d in node.decorator_list])
            if node.name in seen:
                raise MergeConflictError(
                    f"ambiguous declaration {node.name!r} defined at lines {seen[node.name]} and {first}",
                    path=path,
                )
            seen[node.name] = first
            decls.append(
                Declaration(
                    name=node.name,
                    kind="class" if isinstance(node, ast.ClassDef) else "function",
                    start_line=_leading_comment_start(lines, first),
                    end_line=node.end_lineno or node.lineno,
                )
            )
        elif isinstance(node, (ast.Import, ast.ImportFrom)):
            imports.append(
                ImportStmt(
                    key=ast.unparse(node),
                    start_line=node.lineno,
                    end_line=node.end_lineno or node.lineno,
                    is_future=isinstance(node, ast.ImportFrom) and node.module == "__future__",
                )
            )

    return ModuleLayout(
        declarations=tuple(decls),
        imports=tuple(imports),
        header_end_line=_header_end(tree, lines),
    )


def _segment(lines: list[str], start_line: int, end_line: int) -> str:
    text = "".join(lines[start_line - 1 : end_line])
    return text if text.endswith("\n") else text + "\n"


def merge_declarations(existing: str, fresh: str, path: str = "") -> str:
    """
    Keep every declaration of ``existing`` untouched; append the ones that
    only ``fresh`` has, and add any top-level imports they may rely on.

    Monotonic: nothing is ever removed or rewritten. Idempotent: merging the
    result with the same ``fresh`` returns it unchanged.
    """
    if not path.endswith(".py"):
        raise MergeConflictError("declaration-preserving merge only supports Python files", path=path)

    old = scan_module(existing, path=path)
    try:
        new = scan_module(fresh, path=path)
    except MergeConflictError as exc:
        raise RenderError(f"fresh render is not mergeable: {exc.message}", path=path) from exc

    have_decls = {d.name for d in old.declarations}
    have_imports = {i.key for i in old.imports}
    missing_decls = [d for d in new.declarations if d.name not in have_decls]
    missing_imports = [i for i in new.imports if i.key not in have_imports]

    if not missing_decls and not missing_imports:
        return existing

    fresh_lines = fresh.splitlines(keepends=True)
    lines = existing.splitlines(keepends=True)
    if lines and not lines[-1].endswith("\n"):
        lines[-1] += "\n"

    if missing_imports:
        future = [_segment(fresh_lines, i.start_line, i.end_line) for i in missing_imports if i.is_future]
        regular = [_segment(fresh_lines, i.start_line, i.end_line) for i in missing_imports if not i.is_future]

        # future imports must stay first; everything else goes after the last import
        regular_at = old.imports[-1].end_line if old.imports else old.header_end_line
        future_at = old.header_end_line
        future_existing = [i for i in old.imports if i.is_future]
        if future_existing:
            future_at = future_existing[-1].end_line

        if regular:
            block = regular if old.imports else (["\n"] if regular_at else []) + regular
            lines[regular_at:regular_at] = block
        if future:
            lines[future_at:future_at] = future

    out = "".join(lines).rstrip("\n") + "\n"
    for d in missing_decls:
        out += "\n\n" + _segment(fresh_lines, d.start_line, d.end_line)
    return out
