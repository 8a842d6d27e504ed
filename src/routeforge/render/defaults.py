from __future__ import annotations

# Default layouts. Bodies are Jinja2 with the "{{ }}" delimiter pair; every
# name here can be replaced from a template config file.

ROUTER_TPL = "router"
MIDDLEWARE_TPL = "middleware"
HANDLER_TPL = "handler"
HANDLER_SINGLE_TPL = "handler_single"
MIDDLEWARE_SINGLE_TPL = "middleware_single"
MODEL_TPL = "model"
REGISTER_TPL = "register"
CLIENT_TPL = "client"
HTTP_CLIENT_TPL = "http_client"

ROUTER_BODY = r'''{% macro register_node(node, parent) %}
{% for h in node.handlers %}
    {{ parent }}.add_api_route(
        {{ node.path | route_path | pyrepr }},
        {{ (h.func_name ~ "_handler") if handler_by_method else (h.service_module ~ "_handler") }}.{{ h.func_name }},
        methods={{ h.methods | pyrepr }},
        dependencies=_deps({{ (h.func_name ~ "_mw") if handler_by_method else "mw" }}.{{ h.middleware }}_mw()),
    )
{% endfor %}
{% if node.is_root %}
{% for child in node.children %}{{ register_node(child, "root") }}{% endfor %}
{% elif node.children %}
    {{ node.var_name }} = APIRouter(dependencies=_deps(mw.{{ node.group_middleware }}_mw()))
{% for child in node.children %}{{ register_node(child, node.var_name) }}{% endfor %}
    {{ parent }}.include_router({{ node.var_name }})
{% endif %}
{% endmacro %}
# Code generated by routeforge. DO NOT EDIT.
#
# Routes of the "{{ package }}" IDL package. This file is rewritten on every
# update, so customize behaviour in middleware.py instead.

from __future__ import annotations

from typing import Any, Callable, Iterable, Optional

from fastapi import APIRouter, Depends, FastAPI

from {{ modules.router_package }} import middleware as mw
{% if handler_by_method %}
{% for svc in services %}
{% for m in svc.methods %}
from {{ modules.handler_package }}.{{ svc.snake_name }} import {{ m.func_name }} as {{ m.func_name }}_handler
from {{ modules.router_package }}.handler_mw import {{ m.func_name }} as {{ m.func_name }}_mw
{% endfor %}
{% endfor %}
{% else %}
{% for svc in services %}
from {{ modules.handler_package }} import {{ svc.snake_name }} as {{ svc.snake_name }}_handler
{% endfor %}
{% endif %}


def _deps(hooks: Optional[Iterable[Callable[..., Any]]]) -> list[Any]:
    return [Depends(h) for h in hooks or ()]


def register(app: FastAPI) -> None:
    """Register the routes declared by the {{ package }} IDL."""
    root = APIRouter()
{{ register_node(router, "root") }}    app.include_router(root)
'''

MIDDLEWARE_BODY = r'''# Code generated by routeforge.
#
# Middleware hooks for the "{{ package }}" routes. Each function returns the
# dependencies FastAPI runs before its group or handler. Functions already
# present are never rewritten; new ones are appended on update.

from __future__ import annotations

from typing import Any, Callable
{% for tag in middleware_tags %}


def {{ tag }}_mw() -> list[Callable[..., Any]]:
    # your code...
    return []
{% endfor %}
'''

_HANDLER_HEADER = r'''# Code generated by routeforge.
#
# Handlers of {{ service.name }}. Fill in the business logic: handlers that
# already exist are left alone by later updates, new ones are appended.
'''

_HANDLER_SINGLE_HEADER = r'''# Code generated by routeforge.
#
# Handler of {{ service.name }}.{{ method.name }}. Fill in the business logic:
# later updates leave this file as edited.
'''

_HANDLER_PREAMBLE = r'''
from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from {{ modules.model_package }} import models

logger = logging.getLogger(__name__)


async def _bind(request: Request) -> dict[str, Any]:
    payload: dict[str, Any] = dict(request.query_params)
    payload.update(request.path_params)
    if request.method not in ("GET", "HEAD", "DELETE", "OPTIONS") and await request.body():
        data = await request.json()
        if isinstance(data, dict):
            payload.update(data)
    return payload
'''

# one handler; "m" is the method context
_HANDLER_FUNC = r'''

async def {{ m.func_name }}(request: Request) -> JSONResponse:
    """{{ m.comment }}"""
{% if m.request_type %}
    try:
        req = models.{{ m.request_type }}.model_validate(await _bind(request))
    except ValidationError as exc:
        logger.info("{{ m.func_name }}: invalid request: %s", exc)
        return JSONResponse(
            status_code=400,
            content={"detail": exc.errors(include_url=False, include_context=False)},
        )
    logger.debug("{{ m.func_name }} req: %r", req)
{% endif %}

    # your code...
{% if m.response_type %}
    resp: models.{{ m.response_type }} | None = None
    # resp = await service.{{ m.func_name }}(req)
    content = resp.model_dump(mode="json", by_alias=True) if resp is not None else {}
{% else %}
    content: dict[str, Any] = {}
{% endif %}
    return JSONResponse(status_code=200, content=content)
'''

HANDLER_BODY = (
    _HANDLER_HEADER
    + _HANDLER_PREAMBLE
    + "{% for m in service.methods %}\n"
    + _HANDLER_FUNC
    + "{% endfor %}\n"
)

HANDLER_SINGLE_BODY = _HANDLER_SINGLE_HEADER + _HANDLER_PREAMBLE + "{% set m = method %}\n" + _HANDLER_FUNC

MIDDLEWARE_SINGLE_BODY = r'''# Code generated by routeforge.
#
# Middleware hook of {{ service.name }}.{{ method.name }}. Returns the
# dependencies FastAPI runs before the handler; kept as edited on update.

from __future__ import annotations

from typing import Any, Callable


def {{ method.middleware }}_mw() -> list[Callable[..., Any]]:
    # your code...
    return []
'''

MODEL_BODY = r'''# Code generated by routeforge.
#
# Request and response models of the "{{ package }}" IDL package. Classes
# already present are kept as edited; new ones are appended on update.

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
{% for t in types %}


class {{ t.name }}(BaseModel):
{% if t.comment %}
    """{{ t.comment }}"""

{% endif %}
    model_config = ConfigDict(populate_by_name=True{% if not t.fields %}, extra="allow"{% endif %})
{% for f in t.fields %}
    {{ f.name }}: {{ f.annotation }}{{ f.default }}
{% endfor %}
{% endfor %}
'''

REGISTER_BODY = r'''# Code generated by routeforge. DO NOT EDIT.
#
# Aggregates the routers of every generated IDL package. Updates wire new
# packages in above the insertion point, so keep that line in place.

from __future__ import annotations

from importlib import import_module

from fastapi import FastAPI


def generated_register(app: FastAPI) -> None:
    """Register the routers generated from IDL."""

    import_module({{ modules.routes | pyrepr }}).register(app)
    {{ insert_point }}
'''

CLIENT_BODY = r'''# Code generated by routeforge. DO NOT EDIT.

from __future__ import annotations

import os
import threading
from typing import Any, Optional

from {{ modules.client_package }}.http_client import Client, Options
from {{ modules.model_package }} import models


class {{ service.class_name }}Client:
    """Client for {{ service.name }}. Build one at startup and pass it around."""

    def __init__(self, host_url: str, options: Optional[Options] = None) -> None:
        opts = options or Options()
        opts.host_url = host_url
        self._client = Client(opts)

    def close(self) -> None:
        self._client.close()
{% for m in service.methods %}

    def {{ m.func_name }}(self, {{ m.request_param }}, headers: Optional[dict[str, str]] = None) -> {{ m.response_annotation }}:
        """{{ m.comment }}"""
        ret = (
            self._client.r()
            .set_query_params({{ m.query_code }})
            .set_path_params({{ m.path_code }})
            .add_headers({{ m.header_code }})
            .add_headers(headers or {})
            .set_form_params({{ m.form_code }})
            .set_form_file_params({{ m.file_code }})
            .set_body_param({{ m.body_code }})
            .set_result({{ m.result_code }})
            .execute({{ m.send_method | pyrepr }}, {{ m.path | route_path | pyrepr }})
        )
        return ret.result
{% endfor %}


_default_client: Optional[{{ service.class_name }}Client] = None
_default_lock = threading.Lock()


def default_host_url() -> str:
    return os.environ.get({{ service.host_env | pyrepr }}, {{ service.default_host_url | pyrepr }})


def get_default_client(host_url: Optional[str] = None, options: Optional[Options] = None) -> {{ service.class_name }}Client:
    """Build the process-wide client on first use; concurrent first callers share one."""
    global _default_client
    if _default_client is None:
        with _default_lock:
            if _default_client is None:
                _default_client = {{ service.class_name }}Client(host_url or default_host_url(), options)
    return _default_client
{% for m in service.methods %}


def {{ m.func_name }}({{ m.request_param }}, headers: Optional[dict[str, str]] = None) -> {{ m.response_annotation }}:
    return get_default_client().{{ m.func_name }}(req, headers)
{% endfor %}
'''

HTTP_CLIENT_BODY = r'''# Code generated by routeforge. DO NOT EDIT.
#
# Minimal request pipeline shared by the generated service clients.
# Before-request hooks run in order: URL resolution, header merge, body
# encoding. Later hooks rely on the URL and headers set by earlier ones.

from __future__ import annotations

import json
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Mapping, Optional
from urllib.parse import quote, urlencode

import httpx
from pydantic import BaseModel

HDR_CONTENT_TYPE = "Content-Type"

PLAIN_TEXT_TYPE = "text/plain; charset=utf-8"
JSON_CONTENT_TYPE = "application/json; charset=utf-8"
FORM_CONTENT_TYPE = "multipart/form-data"
OCTET_STREAM_TYPE = "application/octet-stream"

_JSON_CHECK = re.compile(r"(?i)(application|text)/(json|.*\+json|json-.*)(;|$)")
_XML_CHECK = re.compile(r"(?i)(application|text)/(xml|.*\+xml)(;|$)")
_ABSOLUTE_URL = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*://")
_PATH_PARAM = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)(:path)?\}")

ResponseResultDecider = Callable[[int, httpx.Response], bool]


class ClientResponseError(Exception):
    def __init__(self, status_code: int, body: bytes, error: Any = None) -> None:
        self.status_code = status_code
        self.body = body
        self.error = error
        super().__init__(f"request failed with status {status_code}: {body[:200]!r}")


def default_response_result_decider(status_code: int, raw_response: httpx.Response) -> bool:
    """Any status above 399 is an error."""
    return status_code > 399


def is_json_type(content_type: str) -> bool:
    return bool(_JSON_CHECK.search(content_type or ""))


def is_xml_type(content_type: str) -> bool:
    return bool(_XML_CHECK.search(content_type or ""))


def is_payload_supported(method: str) -> bool:
    return method not in ("HEAD", "OPTIONS", "GET", "DELETE")


@dataclass
class Options:
    host_url: str = ""
    header: dict[str, str] = field(default_factory=dict)
    timeout: float = 10.0
    transport: Optional[httpx.BaseTransport] = None
    doer: Optional[httpx.Client] = None
    request_body_bind: Optional[Callable[["Client", "Request"], tuple[str, Optional[bytes]]]] = None
    response_result_decider: Optional[ResponseResultDecider] = None


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


class Request:
    def __init__(self, client: "Client") -> None:
        self.client = client
        self.method = ""
        self.url = ""
        self.query_param: list[tuple[str, str]] = []
        self.header = httpx.Headers()
        self.path_param: dict[str, str] = {}
        self.form_param: dict[str, str] = {}
        self.file_param: dict[str, str] = {}
        self.body_param: Any = None
        self.result: Optional[type[BaseModel]] = None
        self.error: Optional[type[BaseModel]] = None
        self.raw_request: Optional[httpx.Request] = None

    def set_header(self, header: str, value: str) -> "Request":
        self.header[header] = value
        return self

    def add_headers(self, params: Mapping[str, Any]) -> "Request":
        for k, v in params.items():
            if v is not None:
                self.header[k] = _stringify(v)
        return self

    def set_query_param(self, param: str, value: Any) -> "Request":
        if value is None:
            return self
        if isinstance(value, (list, tuple, set)):
            for v in value:
                self.query_param.append((param, _stringify(v)))
            return self
        self.query_param = [(k, v) for k, v in self.query_param if k != param]
        self.query_param.append((param, _stringify(value)))
        return self

    def set_query_params(self, params: Mapping[str, Any]) -> "Request":
        for k, v in params.items():
            self.set_query_param(k, v)
        return self

    def set_path_params(self, params: Mapping[str, Any]) -> "Request":
        for k, v in params.items():
            if v is not None:
                self.path_param[k] = _stringify(v)
        return self

    def set_form_params(self, params: Mapping[str, Any]) -> "Request":
        for k, v in params.items():
            if v is not None:
                self.form_param[k] = _stringify(v)
        return self

    def set_form_file_params(self, params: Mapping[str, Any]) -> "Request":
        for k, v in params.items():
            if v is not None:
                self.file_param[k] = str(v)
        return self

    def set_body_param(self, body: Any) -> "Request":
        self.body_param = body
        return self

    def set_result(self, result: Optional[type[BaseModel]]) -> "Request":
        self.result = result
        return self

    def set_error(self, error: Optional[type[BaseModel]]) -> "Request":
        self.error = error
        return self

    def execute(self, method: str, url: str) -> "Response":
        self.method = method
        self.url = url
        return self.client.execute(self)


class Response:
    def __init__(self, request: Request, raw_response: httpx.Response) -> None:
        self.request = request
        self.raw_response = raw_response
        self.body = raw_response.content
        self.result: Any = None

    @property
    def status_code(self) -> int:
        return self.raw_response.status_code

    @property
    def header(self) -> httpx.Headers:
        return self.raw_response.headers


def parse_request_url(c: "Client", r: Request) -> None:
    def fill(m: re.Match[str]) -> str:
        name, catch_all = m.group(1), m.group(2)
        if name not in r.path_param:
            raise ValueError(f"missing path parameter {name!r} for {r.url!r}")
        # a catch-all segment keeps its slashes
        return quote(r.path_param[name], safe="/" if catch_all else "")

    url = _PATH_PARAM.sub(fill, r.url)
    if not _ABSOLUTE_URL.match(url):
        if not url.startswith("/"):
            url = "/" + url
        url = c.host_url.rstrip("/") + url
    if r.query_param:
        url = url + ("&" if "?" in url else "?") + urlencode(r.query_param)
    r.url = url


def parse_request_header(c: "Client", r: Request) -> None:
    hdr = httpx.Headers(c.header)
    hdr.update(r.header)
    if r.form_param or r.file_param:
        hdr[HDR_CONTENT_TYPE] = FORM_CONTENT_TYPE
    r.header = hdr


def detect_content_type(body: Any) -> str:
    if isinstance(body, (BaseModel, dict, list, tuple)):
        return JSON_CONTENT_TYPE
    if isinstance(body, (bytes, bytearray)):
        return OCTET_STREAM_TYPE
    return PLAIN_TEXT_TYPE


def default_request_body_bind(c: "Client", r: Request) -> tuple[str, Optional[bytes]]:
    if not is_payload_supported(r.method) or r.body_param is None:
        return "", None
    content_type = r.header.get(HDR_CONTENT_TYPE, "")
    if not content_type.strip():
        content_type = detect_content_type(r.body_param)
    body = r.body_param
    if is_json_type(content_type):
        if isinstance(body, BaseModel):
            return content_type, body.model_dump_json(by_alias=True, exclude_none=True).encode()
        if isinstance(body, (dict, list, tuple)):
            return content_type, json.dumps(body).encode()
    if isinstance(body, (bytes, bytearray)):
        return content_type, bytes(body)
    return content_type, str(body).encode()


def create_http_request(c: "Client", r: Request) -> None:
    content_type, content = c.bind_request_body(c, r)
    if content_type:
        r.header[HDR_CONTENT_TYPE] = content_type
    if (r.form_param or r.file_param) and is_payload_supported(r.method):
        # httpx writes the multipart boundary itself
        r.header.pop(HDR_CONTENT_TYPE, None)
        files = {k: (Path(p).name, Path(p).read_bytes()) for k, p in r.file_param.items()}
        r.raw_request = c.doer.build_request(
            r.method, r.url, headers=r.header, data=r.form_param, files=files or None
        )
        return
    r.raw_request = c.doer.build_request(r.method, r.url, headers=r.header, content=content)


def unmarshal_content(content_type: str, body: bytes, model: type[BaseModel]) -> BaseModel:
    if is_json_type(content_type):
        return model.model_validate_json(body)
    root = ET.fromstring(body)
    return model.model_validate({child.tag: child.text for child in root})


def parse_response_body(c: "Client", res: Response) -> None:
    if res.status_code == 204:
        return
    content_type = res.header.get(HDR_CONTENT_TYPE, "")
    decodable = is_json_type(content_type) or is_xml_type(content_type)
    if c.response_result_decider(res.status_code, res.raw_response):
        error = None
        if res.request.error is not None and decodable:
            error = unmarshal_content(content_type, res.body, res.request.error)
        raise ClientResponseError(res.status_code, res.body, error)
    if res.request.result is not None and decodable:
        res.result = unmarshal_content(content_type, res.body, res.request.result)


class Client:
    def __init__(self, options: Options) -> None:
        self.host_url = options.host_url
        self.header = dict(options.header)
        self.bind_request_body = options.request_body_bind or default_request_body_bind
        self.response_result_decider = options.response_result_decider or default_response_result_decider
        self.doer = options.doer or httpx.Client(transport=options.transport, timeout=options.timeout)
        self.before_request: list[Callable[[Client, Request], None]] = [
            parse_request_url,
            parse_request_header,
            create_http_request,
        ]
        self.after_response: list[Callable[[Client, Response], None]] = [
            parse_response_body,
        ]

    def r(self) -> Request:
        return Request(self)

    def execute(self, req: Request) -> Response:
        for hook in self.before_request:
            hook(self, req)
        if req.raw_request is None:
            raise RuntimeError("before-request hooks did not build a request")
        res = Response(req, self.doer.send(req.raw_request))
        for hook in self.after_response:
            hook(self, res)
        return res

    def close(self) -> None:
        self.doer.close()
'''
