from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from routeforge.domain.errors import TemplateConfigError
from routeforge.merge.engine import MergeStrategy
from routeforge.render import defaults as d

DEFAULT_DELIMS: tuple[str, str] = ("{{", "}}")

# "by_service": one handler module per service (default), "by_method": one
# handler module and one middleware module per operation
LayoutMode = Literal["always", "by_service", "by_method"]


class TemplateSpec(BaseModel):
    """One layout: a named template, where its output goes and how it merges."""

    name: str
    path: str  # output path pattern, rendered with the default delimiters
    body: str = ""
    delims: tuple[str, str] = DEFAULT_DELIMS
    update: MergeStrategy = MergeStrategy.OVERWRITE
    loop_service: bool = False
    loop_method: bool = False  # once per operation, with service and method; wins over loop_service
    mode: LayoutMode = "always"

    @field_validator("delims")
    @classmethod
    def _check_delims(cls, v: tuple[str, str]) -> tuple[str, str]:
        start, end = v
        if not start or not end:
            raise ValueError("delimiters must be non-empty")
        return v

    def applies(self, handler_by_method: bool) -> bool:
        if self.mode == "always":
            return True
        return (self.mode == "by_method") == handler_by_method


class TemplateConfig(BaseModel):
    layouts: list[TemplateSpec] = Field(default_factory=list)

    @field_validator("layouts")
    @classmethod
    def _unique_names(cls, v: list[TemplateSpec]) -> list[TemplateSpec]:
        seen: set[str] = set()
        for spec in v:
            if spec.name in seen:
                raise ValueError(f"duplicate layout name: {spec.name!r}")
            seen.add(spec.name)
        return v

    def names(self) -> list[str]:
        return [s.name for s in self.layouts]

    def get(self, name: str) -> Optional[TemplateSpec]:
        for s in self.layouts:
            if s.name == name:
                return s
        return None

    def with_overrides(self, other: "TemplateConfig") -> "TemplateConfig":
        """
        Replace layouts by name, keeping their position; layouts with names we
        do not know are appended as custom templates, in their given order.
        """
        by_name = {s.name: s for s in other.layouts}
        merged = [by_name.pop(s.name, s) for s in self.layouts]
        merged.extend(s for s in other.layouts if s.name in by_name)
        return TemplateConfig(layouts=merged)


def default_template_config() -> TemplateConfig:
    return TemplateConfig(
        layouts=[
            TemplateSpec(
                name=d.ROUTER_TPL,
                path="{{ router_dir }}/{{ package }}/routes.py",
                body=d.ROUTER_BODY,
                update=MergeStrategy.OVERWRITE,
            ),
            TemplateSpec(
                name=d.MIDDLEWARE_TPL,
                path="{{ router_dir }}/{{ package }}/middleware.py",
                body=d.MIDDLEWARE_BODY,
                update=MergeStrategy.PROTECT,
            ),
            TemplateSpec(
                name=d.MIDDLEWARE_SINGLE_TPL,
                path="{{ router_dir }}/{{ package }}/handler_mw/{{ method.func_name }}.py",
                body=d.MIDDLEWARE_SINGLE_BODY,
                update=MergeStrategy.PROTECT,
                loop_method=True,
                mode="by_method",
            ),
            TemplateSpec(
                name=d.HANDLER_TPL,
                path="{{ handler_dir }}/{{ package }}/{{ service.snake_name }}.py",
                body=d.HANDLER_BODY,
                update=MergeStrategy.PROTECT,
                loop_service=True,
                mode="by_service",
            ),
            TemplateSpec(
                name=d.HANDLER_SINGLE_TPL,
                path="{{ handler_dir }}/{{ package }}/{{ service.snake_name }}/{{ method.func_name }}.py",
                body=d.HANDLER_SINGLE_BODY,
                update=MergeStrategy.PROTECT,
                loop_method=True,
                mode="by_method",
            ),
            TemplateSpec(
                name=d.MODEL_TPL,
                path="{{ model_dir }}/{{ package }}/models.py",
                body=d.MODEL_BODY,
                update=MergeStrategy.PROTECT,
            ),
            TemplateSpec(
                name=d.REGISTER_TPL,
                path="{{ router_dir }}/register.py",
                body=d.REGISTER_BODY,
                update=MergeStrategy.INSERT_MARKER,
            ),
            TemplateSpec(
                name=d.HTTP_CLIENT_TPL,
                path="{{ client_dir }}/{{ package }}/http_client.py",
                body=d.HTTP_CLIENT_BODY,
                update=MergeStrategy.OVERWRITE,
            ),
            TemplateSpec(
                name=d.CLIENT_TPL,
                path="{{ client_dir }}/{{ package }}/{{ service.snake_name }}_client.py",
                body=d.CLIENT_BODY,
                update=MergeStrategy.OVERWRITE,
                loop_service=True,
            ),
        ]
    )


def load_template_config(path: Path, base: Optional[TemplateConfig] = None) -> TemplateConfig:
    """
    Read a YAML layout file and apply it over ``base`` (the defaults if None).

      layouts:
        - name: handler
          path: "app/handlers/{{ service.snake_name }}.py"
          update: protect
          loop_service: true
          body: |
            ...
    """
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise TemplateConfigError(f"cannot read template config: {exc}", path=str(path)) from exc

    try:
        loaded = TemplateConfig.model_validate(data)
    except ValidationError as exc:
        raise TemplateConfigError(f"invalid template config: {exc}", path=str(path)) from exc

    return (base or default_template_config()).with_overrides(loaded)
