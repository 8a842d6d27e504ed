from __future__ import annotations

import logging
from typing import Iterable, Iterator

from routeforge.domain.errors import (
    ConflictingMiddlewareError,
    DuplicateRouteError,
    RouteTreeError,
)
from routeforge.domain.models import ANY_METHOD, OperationDescriptor
from routeforge.domain.naming import handler_func_name, sanitize_identifier
from routeforge.tree.model import HandlerBinding, RouteNode

logger = logging.getLogger(__name__)

ROOT_VAR = "root"

# default group tags live under this prefix; default handler tags start with "_"
GROUP_MW_PREFIX = "group"


def disambiguate(candidate: str, sibling_names: Iterable[str]) -> str:
    """
    Return ``candidate`` if no sibling uses it, otherwise ``candidate_N`` with
    the smallest N >= 2 that is still free.

    Depends only on the set of names already taken, so the same insertion
    order always yields the same names.
    """
    taken = set(sibling_names)
    if candidate not in taken:
        return candidate
    n = 2
    while f"{candidate}_{n}" in taken:
        n += 1
    return f"{candidate}_{n}"


def group_name_for_segment(segment: str) -> str:
    # :id -> id, {id} -> id, *filepath -> filepath, user-list -> user_list
    s = segment.strip()
    if s[:1] in (":", "*"):
        s = s[1:]
    if s.startswith("{") and s.endswith("}"):
        s = s[1:-1].split(":", 1)[0]
    return sanitize_identifier(s)


def _iter_prefixes(path: str) -> Iterator[tuple[str, str]]:
    """/users/:id -> ("/users", "users"), ("/users/:id", ":id")"""
    prefix = ""
    for seg in path.strip("/").split("/"):
        if not seg:
            continue
        prefix = f"{prefix}/{seg}"
        yield prefix, seg


def _var_name(parent: RouteNode, group_name: str) -> str:
    # group names never contain "__", so joining the chain with it stays unique
    # across the whole router function, not just among siblings
    if parent.is_root:
        return f"_{group_name}"
    return f"{parent.var_name}__{group_name}"


def _new_child(parent: RouteNode, path: str, segment: str) -> RouteNode:
    name = disambiguate(
        group_name_for_segment(segment),
        (c.group_name for c in parent.children),
    )
    var = _var_name(parent, name)
    node = RouteNode(path=path, group_name=name, var_name=var, group_middleware=f"{GROUP_MW_PREFIX}{var}")
    parent.children.append(node)
    return node


def handler_middleware_tag(op: OperationDescriptor) -> str:
    return op.handler_middleware or f"_{handler_func_name(op.handler_name)}"


def _attach_handler(node: RouteNode, op: OperationDescriptor) -> None:
    method = op.method or ""
    for existing in node.handlers:
        if existing.method == method or ANY_METHOD in (existing.method, method):
            raise DuplicateRouteError(
                f"{method} conflicts with {existing.method} already bound to "
                f"handler {existing.name!r}",
                path=node.path,
            )
    node.handlers.append(
        HandlerBinding(
            method=method,
            name=op.handler_name,
            service=op.service,
            middleware=handler_middleware_tag(op),
            request_type=op.request_type,
            response_type=op.response_type,
            comment=op.comment or f"{method} {op.path}",
        )
    )


def _prune(node: RouteNode) -> None:
    for c in node.children:
        _prune(c)
    node.children = [c for c in node.children if c.handlers or c.children]


def build_route_tree(descriptors: Iterable[OperationDescriptor]) -> RouteNode:
    """
    Group an ordered sequence of operations into a prefix tree.

    - one node per path prefix, ``node.path`` is the full path from the root
    - children keep first-seen order (never re-sorted)
    - several methods may share a node; a repeated method (or ANY next to any
      other method) on one path raises DuplicateRouteError
    - nodes left with neither handlers nor children are pruned
    - default group tags are "group" + var_name, default handler tags
      "_" + function name, so the two scopes never share a hook
    """
    root = RouteNode(path="/", group_name=ROOT_VAR, var_name=ROOT_VAR, group_middleware=f"{GROUP_MW_PREFIX}_{ROOT_VAR}")

    explicit_group_mw: dict[str, str] = {}
    func_names: dict[str, str] = {}

    for op in descriptors:
        node = root
        for prefix, segment in _iter_prefixes(op.path):
            found = node.child(prefix)
            node = found if found is not None else _new_child(node, prefix, segment)

        if op.group_middleware:
            if node.is_root:
                # the root never forms a group, so nothing would run the hook
                raise RouteTreeError(
                    f"group middleware {op.group_middleware!r} cannot apply to the root path",
                    path=node.path,
                )
            prev = explicit_group_mw.get(node.path)
            if prev is not None and prev != op.group_middleware:
                raise ConflictingMiddlewareError(
                    f"group middleware {op.group_middleware!r} conflicts with {prev!r}",
                    path=node.path,
                )
            explicit_group_mw[node.path] = op.group_middleware
            node.group_middleware = op.group_middleware

        if not op.handler_name:
            continue

        _attach_handler(node, op)
        func = handler_func_name(op.handler_name)
        if func in func_names:
            raise DuplicateRouteError(
                f"handler {op.handler_name!r} generates function {func!r} "
                f"already used by {func_names[func]}",
                path=op.path,
            )
        func_names[func] = f"{op.method} {op.path}"
        logger.debug("bound %s %s -> %s", op.method, op.path, func)

    _prune(root)
    return root
