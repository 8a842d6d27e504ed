from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Optional

from routeforge.domain.models import ALL_METHODS, ANY_METHOD
from routeforge.domain.naming import handler_func_name, snake_case


@dataclass(frozen=True)
class HandlerBinding:
    """An operation bound at a route node."""

    method: str
    name: str
    service: str
    middleware: str
    request_type: str = ""
    response_type: str = ""
    comment: str = ""

    @property
    def func_name(self) -> str:
        return handler_func_name(self.name)

    @property
    def service_module(self) -> str:
        return snake_case(self.service)

    @property
    def methods(self) -> list[str]:
        # ANY expands to every verb at registration time
        if self.method == ANY_METHOD:
            return list(ALL_METHODS)
        return [self.method]


@dataclass
class RouteNode:
    path: str
    group_name: str
    var_name: str
    group_middleware: str
    children: list[RouteNode] = field(default_factory=list)
    handlers: list[HandlerBinding] = field(default_factory=list)

    @property
    def is_root(self) -> bool:
        return self.path == "/"

    def child(self, path: str) -> Optional[RouteNode]:
        for c in self.children:
            if c.path == path:
                return c
        return None

    def handler_for(self, method: str) -> Optional[HandlerBinding]:
        for h in self.handlers:
            if h.method == method:
                return h
        return None

    def walk(self) -> Iterator[RouteNode]:
        """Depth-first, pre-order, children in insertion order."""
        yield self
        for c in self.children:
            yield from c.walk()

    def all_handlers(self) -> list[HandlerBinding]:
        return [h for n in self.walk() for h in n.handlers]

    def middleware_tags(self, include_handlers: bool = True) -> list[str]:
        """
        Distinct middleware tags in tree order: a node's group tag (when it
        forms a group) before its handler tags. The root never forms a named
        group, so its group tag is excluded.
        """
        seen: set[str] = set()
        out: list[str] = []
        for n in self.walk():
            tags = []
            if n.children and not n.is_root:
                tags.append(n.group_middleware)
            if include_handlers:
                tags.extend(h.middleware for h in n.handlers)
            for t in tags:
                if t not in seen:
                    seen.add(t)
                    out.append(t)
        return out
