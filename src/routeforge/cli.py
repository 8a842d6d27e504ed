from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table
from rich.tree import Tree

from routeforge.domain.errors import GenerationError
from routeforge.domain.loader import load_idl_package
from routeforge.domain.models import IdlPackage
from routeforge.logging_config import setup_logging
from routeforge.orchestrator.options import GeneratorOptions
from routeforge.orchestrator.pipeline import run_generate
from routeforge.render.config import TemplateConfig, default_template_config, load_template_config
from routeforge.tree.builder import build_route_tree
from routeforge.tree.model import RouteNode

app = typer.Typer(no_args_is_help=True, add_completion=False)

console = Console()

_ACTION_STYLE = {
    "create": "green",
    "update": "yellow",
    "unchanged": "dim",
    "skip": "dim",
}


def _load_idl(idl: str) -> IdlPackage:
    idl_path = Path(idl).expanduser().resolve()
    if not idl_path.is_file():
        raise typer.BadParameter(f"IDL manifest does not exist: {idl_path}")
    try:
        return load_idl_package(idl_path)
    except ValidationError as exc:
        console.print(f"[bold red]invalid IDL manifest[/bold red] {idl_path}")
        console.print(str(exc), markup=False)
        raise typer.Exit(code=1)


def _load_config(template_config: Optional[str]) -> TemplateConfig:
    if not template_config:
        return default_template_config()
    return load_template_config(Path(template_config).expanduser())


def _fail(exc: GenerationError) -> None:
    console.print(f"[bold red]{type(exc).__name__}[/bold red]", end=" ")
    console.print(str(exc), markup=False)
    raise typer.Exit(code=1)


@app.command()
def generate(
    idl: str = typer.Argument(..., help="Parsed IDL manifest (JSON or YAML)"),
    out: str = typer.Option(".", "--out", "-o", help="Project root to generate into"),
    module: str = typer.Option("", help="Python import prefix of the project root"),
    template_config: Optional[str] = typer.Option(None, help="YAML file overriding or adding layouts"),
    handler_by_method: bool = typer.Option(
        False, "--handler-by-method", help="One handler and one middleware file per operation"
    ),
    dry_run: bool = typer.Option(False, help="Render and merge, but write nothing"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    setup_logging("DEBUG" if verbose else "INFO")
    package = _load_idl(idl)
    options = GeneratorOptions(
        out_dir=Path(out).expanduser(),
        module=module,
        handler_by_method=handler_by_method,
        dry_run=dry_run,
    )

    try:
        result = run_generate(package, options, _load_config(template_config))
    except GenerationError as exc:
        _fail(exc)
        return

    plan = result.plan
    console.print(f"[bold green]routeforge[/bold green] generate: {plan.package} -> {plan.out_dir}")

    table = Table(show_header=True, header_style="bold")
    table.add_column("ACTION", no_wrap=True)
    table.add_column("FILE")
    table.add_column("TEMPLATE", no_wrap=True)
    table.add_column("STRATEGY", no_wrap=True)
    for f in plan.files:
        style = _ACTION_STYLE.get(f.action, "")
        table.add_row(f"[{style}]{f.action}[/{style}]", f.rel_path, f.template, f.strategy.value)
    console.print(table)

    if result.dry_run:
        console.print(f"Dry run: {len(plan.pending)} file(s) would be written.")
    else:
        console.print(f"Written: {result.written}")


def _add_branch(branch: Tree, node: RouteNode) -> None:
    for h in node.handlers:
        branch.add(f"[cyan]{h.method:<7}[/cyan] {node.path} -> {h.func_name}  [dim](mw {h.middleware})[/dim]")
    for child in node.children:
        label = f"[bold]{child.path}[/bold]  [dim]{child.var_name}"
        if child.children:
            label += f", group mw {child.group_middleware}"
        label += "[/dim]"
        _add_branch(branch.add(label), child)


@app.command()
def tree(
    idl: str = typer.Argument(..., help="Parsed IDL manifest (JSON or YAML)"),
) -> None:
    """Print the route tree built from the manifest."""
    package = _load_idl(idl)
    try:
        root = build_route_tree(package.operations())
    except GenerationError as exc:
        _fail(exc)
        return

    view = Tree(f"[bold]/[/bold]  [dim]{package.snake_name}[/dim]")
    _add_branch(view, root)
    console.print(view)


@app.command()
def templates(
    template_config: Optional[str] = typer.Option(None, help="YAML file overriding or adding layouts"),
) -> None:
    """List the layouts a generate run would render."""
    try:
        config = _load_config(template_config)
    except GenerationError as exc:
        _fail(exc)
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("NAME", no_wrap=True)
    table.add_column("PATH")
    table.add_column("STRATEGY", no_wrap=True)
    table.add_column("LOOP", no_wrap=True)
    table.add_column("MODE", no_wrap=True)
    table.add_column("DELIMS", no_wrap=True)
    for spec in config.layouts:
        table.add_row(
            spec.name,
            spec.path,
            spec.update.value,
            "method" if spec.loop_method else "service" if spec.loop_service else "-",
            spec.mode,
            " ".join(spec.delims),
        )
    console.print(table)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
