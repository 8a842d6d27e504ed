from __future__ import annotations

import re
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from routeforge.domain.naming import is_identifier, snake_case

HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD", "ANY"]
ParamSource = Literal["query", "path", "header", "form", "file", "body", "none"]

ANY_METHOD = "ANY"
ALL_METHODS: tuple[str, ...] = ("GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD")

_MULTI_SLASH = re.compile(r"/{2,}")


def is_payload_method(method: str) -> bool:
    return method in ("POST", "PUT", "PATCH")


def normalize_path(path: str) -> str:
    p = (path or "").strip()
    p = _MULTI_SLASH.sub("/", p)
    # keep "/" as-is, otherwise strip trailing slash for stability
    if p != "/" and p.endswith("/"):
        p = p[:-1]
    return p


class OperationDescriptor(BaseModel):
    """One annotated API operation, as produced by an IDL translator."""

    method: Optional[HttpMethod] = None
    path: str
    handler_name: str = ""
    handler_middleware: str = ""
    group_middleware: str = ""
    request_type: str = ""
    response_type: str = ""
    comment: str = ""
    service: str = ""

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, v: object) -> object:
        if isinstance(v, str):
            v = v.strip().upper()
            return v or None
        return v

    @field_validator("path")
    @classmethod
    def _check_path(cls, v: str) -> str:
        v = normalize_path(v)
        if not v.startswith("/"):
            raise ValueError(f"path must start with '/': {v!r}")
        return v

    @field_validator("request_type", "response_type", "handler_middleware", "group_middleware")
    @classmethod
    def _check_identifier(cls, v: str) -> str:
        v = v.strip()
        if v and not is_identifier(v):
            raise ValueError(f"not a valid identifier: {v!r}")
        return v

    @model_validator(mode="after")
    def _method_required_for_handler(self) -> "OperationDescriptor":
        if self.handler_name and self.method is None:
            raise ValueError(f"method is required for handler {self.handler_name!r}")
        return self


class FieldDescriptor(BaseModel):
    name: str
    type: str = "str"
    source: ParamSource = "body"
    alias: str = ""
    optional: bool = False

    @field_validator("name")
    @classmethod
    def _check_name(cls, v: str) -> str:
        if not is_identifier(v):
            raise ValueError(f"not a valid field name: {v!r}")
        return v

    @property
    def wire_name(self) -> str:
        return self.alias or self.name


class TypeDescriptor(BaseModel):
    name: str
    fields: list[FieldDescriptor] = Field(default_factory=list)
    comment: str = ""

    @field_validator("name")
    @classmethod
    def _check_name(cls, v: str) -> str:
        if not is_identifier(v):
            raise ValueError(f"not a valid type name: {v!r}")
        return v

    def fields_from(self, source: str) -> list[FieldDescriptor]:
        return [f for f in self.fields if f.source == source]


class ServiceDescriptor(BaseModel):
    name: str
    base_domain: str = ""
    comment: str = ""
    operations: list[OperationDescriptor] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _check_name(cls, v: str) -> str:
        # the snake form names generated modules
        if not is_identifier(snake_case(v)):
            raise ValueError(f"service does not map to a valid identifier: {v!r}")
        return v

    @property
    def snake_name(self) -> str:
        return snake_case(self.name)


class IdlPackage(BaseModel):
    """A parsed IDL file: the unit one generator run works on."""

    package: str
    services: list[ServiceDescriptor] = Field(default_factory=list)
    types: list[TypeDescriptor] = Field(default_factory=list)

    @field_validator("package")
    @classmethod
    def _check_package(cls, v: str) -> str:
        if not is_identifier(snake_case(v)):
            raise ValueError(f"package does not map to a valid identifier: {v!r}")
        return v

    @property
    def snake_name(self) -> str:
        return snake_case(self.package)

    def operations(self) -> list[OperationDescriptor]:
        """Flatten services in declaration order, stamping the owning service."""
        out: list[OperationDescriptor] = []
        for svc in self.services:
            for op in svc.operations:
                out.append(op.model_copy(update={"service": svc.name}))
        return out

    def find_type(self, name: str) -> Optional[TypeDescriptor]:
        for t in self.types:
            if t.name == name:
                return t
        return None
