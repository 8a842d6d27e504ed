from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from routeforge.domain.models import (
    ANY_METHOD,
    FieldDescriptor,
    IdlPackage,
    OperationDescriptor,
    ServiceDescriptor,
    TypeDescriptor,
    is_payload_method,
)
from routeforge.domain.naming import camel_case, handler_func_name
from routeforge.merge.markers import INSERT_POINT
from routeforge.orchestrator.options import GeneratorOptions
from routeforge.tree.builder import handler_middleware_tag
from routeforge.tree.model import RouteNode


@dataclass(frozen=True)
class FieldContext:
    name: str
    wire_name: str
    annotation: str
    default: str


@dataclass(frozen=True)
class TypeContext:
    name: str
    comment: str
    fields: tuple[FieldContext, ...]


@dataclass(frozen=True)
class MethodContext:
    name: str
    func_name: str
    middleware: str
    http_method: str
    send_method: str
    path: str
    comment: str
    request_type: str
    response_type: str
    request_param: str
    response_annotation: str
    result_code: str
    query_code: str
    path_code: str
    header_code: str
    form_code: str
    file_code: str
    body_code: str


@dataclass(frozen=True)
class ServiceContext:
    name: str
    snake_name: str
    class_name: str
    comment: str
    host_env: str
    default_host_url: str
    methods: tuple[MethodContext, ...]


@dataclass(frozen=True)
class ModulePaths:
    handler_package: str
    router_package: str
    routes: str
    model_package: str
    client_package: str


def _dotted(*parts: str) -> str:
    out: list[str] = []
    for p in parts:
        out.extend(seg for seg in p.replace("/", ".").split(".") if seg)
    return ".".join(out)


def _field_context(f: FieldDescriptor) -> FieldContext:
    annotation = f"Optional[{f.type}]" if f.optional else f.type
    if f.alias:
        default_arg = "default=None, " if f.optional else ""
        default = f" = Field({default_arg}alias={f.alias!r})"
    elif f.optional:
        default = " = None"
    else:
        default = ""
    return FieldContext(name=f.name, wire_name=f.wire_name, annotation=annotation, default=default)


def _dict_code(fields: list[FieldDescriptor]) -> str:
    # {"wire": req.attr, ...}
    if not fields:
        return "{}"
    return "{" + ", ".join(f"{f.wire_name!r}: req.{f.name}" for f in fields) + "}"


def _body_code(op: OperationDescriptor, req_type: Optional[TypeDescriptor]) -> str:
    method = op.method or ""
    if not op.request_type or not (is_payload_method(method) or method == ANY_METHOD):
        return "None"
    if req_type is None or not req_type.fields:
        # undeclared shape: send the whole request model
        return "req"
    body = req_type.fields_from("body")
    if not body:
        return "None"
    names = ", ".join(repr(f.name) for f in body)
    return f"req.model_dump(mode=\"json\", by_alias=True, exclude_none=True, include={{{names}}})"


def method_context(op: OperationDescriptor, idl: IdlPackage) -> MethodContext:
    req_type = idl.find_type(op.request_type) if op.request_type else None

    def fields(source: str) -> list[FieldDescriptor]:
        return req_type.fields_from(source) if req_type is not None else []

    method = op.method or ""
    return MethodContext(
        name=op.handler_name,
        func_name=handler_func_name(op.handler_name),
        middleware=handler_middleware_tag(op),
        http_method=method,
        # the wildcard has no wire form; clients send it as POST
        send_method="POST" if method == ANY_METHOD else method,
        path=op.path,
        comment=op.comment or f"{method} {op.path}",
        request_type=op.request_type,
        response_type=op.response_type,
        request_param=f"req: models.{op.request_type}" if op.request_type else "req: Any = None",
        response_annotation=f"models.{op.response_type}" if op.response_type else "Any",
        result_code=f"models.{op.response_type}" if op.response_type else "None",
        query_code=_dict_code(fields("query")),
        path_code=_dict_code(fields("path")),
        header_code=_dict_code(fields("header")),
        form_code=_dict_code(fields("form")),
        file_code=_dict_code(fields("file")),
        body_code=_body_code(op, req_type),
    )


def service_context(svc: ServiceDescriptor, idl: IdlPackage) -> ServiceContext:
    methods = tuple(method_context(op, idl) for op in svc.operations if op.handler_name)
    return ServiceContext(
        name=svc.name,
        snake_name=svc.snake_name,
        class_name=camel_case(svc.name),
        comment=svc.comment,
        host_env=f"{svc.snake_name.upper()}_HOST_URL",
        default_host_url=f"http://{svc.base_domain}" if svc.base_domain else "http://127.0.0.1:8888",
        methods=methods,
    )


def type_contexts(idl: IdlPackage) -> tuple[TypeContext, ...]:
    """Declared types in IDL order, then referenced-but-undeclared ones as open stubs."""
    out: list[TypeContext] = []
    seen: set[str] = set()
    for t in idl.types:
        seen.add(t.name)
        out.append(TypeContext(name=t.name, comment=t.comment, fields=tuple(_field_context(f) for f in t.fields)))
    for op in idl.operations():
        for name in (op.request_type, op.response_type):
            if name and name not in seen:
                seen.add(name)
                out.append(TypeContext(name=name, comment="", fields=()))
    return tuple(out)


def module_paths(idl: IdlPackage, options: GeneratorOptions) -> ModulePaths:
    pkg = idl.snake_name
    router_package = _dotted(options.module, options.router_dir, pkg)
    return ModulePaths(
        handler_package=_dotted(options.module, options.handler_dir, pkg),
        router_package=router_package,
        routes=f"{router_package}.routes",
        model_package=_dotted(options.module, options.model_dir, pkg),
        client_package=_dotted(options.module, options.client_dir, pkg),
    )


def package_context(idl: IdlPackage, tree: RouteNode, options: GeneratorOptions) -> dict[str, Any]:
    """
    Everything package-level templates can see. Per-service runs add
    ``service``; per-method runs add ``service`` and ``method``.
    """
    return {
        "package": idl.snake_name,
        "idl": idl,
        "router": tree,
        "middleware_tags": tree.middleware_tags(include_handlers=not options.handler_by_method),
        "handler_by_method": options.handler_by_method,
        "services": tuple(service_context(s, idl) for s in idl.services),
        "types": type_contexts(idl),
        "modules": module_paths(idl, options),
        "insert_point": INSERT_POINT,
        "handler_dir": options.handler_dir.strip("/"),
        "router_dir": options.router_dir.strip("/"),
        "model_dir": options.model_dir.strip("/"),
        "client_dir": options.client_dir.strip("/"),
    }
