from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Literal, Optional

from routeforge.domain.errors import GenerationError, MergeConflictError, RenderError
from routeforge.domain.models import IdlPackage
from routeforge.merge.engine import MergeStrategy, merge
from routeforge.orchestrator.context import package_context
from routeforge.orchestrator.options import GeneratorOptions
from routeforge.render.config import TemplateConfig, default_template_config
from routeforge.render.renderer import TemplateRenderer
from routeforge.tree.builder import build_route_tree
from routeforge.tree.model import RouteNode

logger = logging.getLogger(__name__)

Action = Literal["create", "update", "unchanged", "skip"]


@dataclass(frozen=True)
class StagedFile:
    template: str
    rel_path: str
    abs_path: Path
    content: str
    action: Action
    strategy: MergeStrategy


@dataclass(frozen=True)
class GenerationPlan:
    package: str
    out_dir: Path
    tree: RouteNode
    files: tuple[StagedFile, ...]

    @property
    def pending(self) -> list[StagedFile]:
        return [f for f in self.files if f.action in ("create", "update")]


@dataclass(frozen=True)
class GenerateResult:
    plan: GenerationPlan
    written: int
    dry_run: bool


def _normalize_rel(rendered: str, template: str) -> str:
    p = PurePosixPath(rendered.strip().replace("\\", "/"))
    if not rendered.strip() or p.is_absolute() or ".." in p.parts:
        raise RenderError(f"template {template!r} rendered an invalid output path {rendered!r}")
    return str(p)


def _read_existing(path: Path, rel_path: str) -> Optional[str]:
    if not path.is_file():
        return None
    try:
        # newline="" keeps line endings byte for byte
        with path.open("r", encoding="utf-8", newline="") as fh:
            return fh.read()
    except UnicodeDecodeError as exc:
        raise MergeConflictError(f"existing file is not valid UTF-8: {exc}", path=rel_path) from exc


def _with_path(exc: GenerationError, rel_path: str) -> GenerationError:
    if exc.path:
        return exc
    return type(exc)(exc.message, path=rel_path)


def plan_generation(
    idl: IdlPackage,
    options: GeneratorOptions,
    config: Optional[TemplateConfig] = None,
) -> GenerationPlan:
    """
    Build the tree once, then render and merge every layout in order.

    Nothing touches the disk here except reading existing files (each at most
    once). The first error aborts the whole plan, so a failed run leaves the
    project exactly as it was.
    """
    config = config or default_template_config()
    renderer = TemplateRenderer(config)
    tree = build_route_tree(idl.operations())
    base_ctx = package_context(idl, tree, options)
    out_dir = options.out_dir.resolve()

    staged: list[StagedFile] = []
    claimed: dict[str, str] = {}

    for spec in config.layouts:
        if not spec.applies(options.handler_by_method):
            continue
        if spec.loop_method:
            contexts = [
                {**base_ctx, "service": svc, "method": m}
                for svc in base_ctx["services"]
                for m in svc.methods
            ]
        elif spec.loop_service:
            contexts = [{**base_ctx, "service": svc} for svc in base_ctx["services"]]
        else:
            contexts = [base_ctx]

        for ctx in contexts:
            rel_path = _normalize_rel(renderer.render_string(spec.path, ctx, name=f"{spec.name}.path"), spec.name)
            if rel_path in claimed:
                raise GenerationError(
                    f"templates {claimed[rel_path]!r} and {spec.name!r} render to the same file",
                    path=rel_path,
                )
            claimed[rel_path] = spec.name

            try:
                fresh = renderer.render(spec.name, ctx)
                if not fresh.strip():
                    logger.debug("skipping %s: %s rendered nothing", rel_path, spec.name)
                    continue
                abs_path = out_dir / rel_path
                existing = _read_existing(abs_path, rel_path)
                content = merge(existing, fresh, spec.update, path=rel_path)
            except GenerationError as exc:
                err = _with_path(exc, rel_path)
                logger.error("aborting generation of %s: %s", idl.package, err)
                raise err from exc

            action: Action
            if existing is None:
                action = "create"
            elif content == existing:
                action = "skip" if spec.update is MergeStrategy.SKIP else "unchanged"
            else:
                action = "update"

            staged.append(
                StagedFile(
                    template=spec.name,
                    rel_path=rel_path,
                    abs_path=abs_path,
                    content=content,
                    action=action,
                    strategy=spec.update,
                )
            )

    return GenerationPlan(package=idl.snake_name, out_dir=out_dir, tree=tree, files=tuple(staged))


def _atomic_write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as fh:
            fh.write(content)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


def commit(plan: GenerationPlan) -> int:
    """Write every created/updated file of a fully merged plan. Returns files written."""
    written = 0
    for f in plan.pending:
        _atomic_write(f.abs_path, f.content)
        logger.debug("%s %s", f.action, f.rel_path)
        written += 1
    return written


def run_generate(
    idl: IdlPackage,
    options: GeneratorOptions,
    config: Optional[TemplateConfig] = None,
) -> GenerateResult:
    plan = plan_generation(idl, options, config)
    written = 0 if options.dry_run else commit(plan)
    logger.info(
        "%s: %d file(s) staged, %d written%s",
        plan.package,
        len(plan.files),
        written,
        " (dry run)" if options.dry_run else "",
    )
    return GenerateResult(plan=plan, written=written, dry_run=options.dry_run)
