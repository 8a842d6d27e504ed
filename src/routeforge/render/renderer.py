from __future__ import annotations

import re
from typing import Any, Mapping

from jinja2 import DictLoader, Environment, StrictUndefined, TemplateError

from routeforge.domain.errors import RenderError, TemplateConfigError
from routeforge.domain.naming import camel_case, snake_case
from routeforge.render.config import DEFAULT_DELIMS, TemplateConfig

_COLON_PARAM = re.compile(r":([A-Za-z_][A-Za-z0-9_]*)")
_STAR_PARAM = re.compile(r"\*([A-Za-z_][A-Za-z0-9_]*)$")


def route_path(path: str) -> str:
    # /users/:id -> /users/{id}, /static/*filepath -> /static/{filepath:path}
    p = _COLON_PARAM.sub(r"{\1}", path)
    return _STAR_PARAM.sub(r"{\1:path}", p)


def _syntax_for(delims: tuple[str, str]) -> dict[str, str]:
    """
    Derive Jinja block/comment tokens from a variable delimiter pair:
    ("{{", "}}") gives the stock "{% %}" / "{# #}", ("[[", "]]") gives "[% %]".
    """
    start, end = delims
    syntax = {
        "variable_start_string": start,
        "variable_end_string": end,
        "block_start_string": start[0] + "%",
        "block_end_string": "%" + end[-1],
        "comment_start_string": start[0] + "#",
        "comment_end_string": "#" + end[-1],
    }
    if syntax["block_start_string"] == start or syntax["block_end_string"] == end:
        raise TemplateConfigError(f"delimiters {delims!r} collide with derived block delimiters")
    return syntax


def _make_env(delims: tuple[str, str], bodies: dict[str, str]) -> Environment:
    env = Environment(
        loader=DictLoader(bodies),
        undefined=StrictUndefined,
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
        autoescape=False,  # generating source code, not HTML
        **_syntax_for(delims),
    )
    env.filters.update(
        snake=snake_case,
        camel=camel_case,
        route_path=route_path,
        pyrepr=repr,
    )
    return env


class TemplateRenderer:
    """
    Render registered templates by name.

    Templates sharing a delimiter pair live in one Jinja environment and can
    import or include each other. Environments are built once here and never
    mutated afterwards, so one renderer can serve several runs.
    """

    def __init__(self, config: TemplateConfig):
        self.config = config
        groups: dict[tuple[str, str], dict[str, str]] = {DEFAULT_DELIMS: {}}
        for spec in config.layouts:
            groups.setdefault(tuple(spec.delims), {})[spec.name] = spec.body
        self._envs = {delims: _make_env(delims, bodies) for delims, bodies in groups.items()}

    def render(self, name: str, context: Mapping[str, Any]) -> str:
        spec = self.config.get(name)
        if spec is None:
            raise RenderError(f"unknown template {name!r}")
        env = self._envs[tuple(spec.delims)]
        try:
            return env.get_template(name).render(**context)
        except TemplateError as exc:
            raise RenderError(f"template {name!r}: {exc}") from exc

    def render_string(self, text: str, context: Mapping[str, Any], name: str = "<inline>") -> str:
        """Render ad-hoc text (output path patterns) with the default delimiters."""
        try:
            return self._envs[DEFAULT_DELIMS].from_string(text).render(**context)
        except TemplateError as exc:
            raise RenderError(f"template {name!r}: {exc}") from exc
