from __future__ import annotations

import keyword
import re

_SAFE = re.compile(r"[^a-zA-Z0-9_]+")
_MULTI_UNDERSCORE = re.compile(r"_{2,}")
_CAMEL_BOUNDARY_1 = re.compile(r"([A-Z]+)([A-Z][a-z])")
_CAMEL_BOUNDARY_2 = re.compile(r"([a-z0-9])([A-Z])")
_IDENT = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def snake_case(name: str) -> str:
    # SayHello -> say_hello, getUserByID -> get_user_by_id, user-list -> user_list
    s = _CAMEL_BOUNDARY_1.sub(r"\1_\2", name or "")
    s = _CAMEL_BOUNDARY_2.sub(r"\1_\2", s)
    s = _SAFE.sub("_", s)
    s = _MULTI_UNDERSCORE.sub("_", s)
    return s.strip("_").lower()


def camel_case(name: str) -> str:
    # hello_service -> HelloService
    return "".join(p[:1].upper() + p[1:] for p in snake_case(name).split("_") if p)


def is_identifier(name: str) -> bool:
    return bool(_IDENT.match(name or "")) and not keyword.iskeyword(name)


def sanitize_identifier(name: str, fallback: str = "group") -> str:
    """
    Turn arbitrary text into a snake_case Python identifier.

    The result never starts or ends with "_" and never contains "__", so
    identifiers built by joining sanitized names with "__" stay unambiguous.
    Leading digits get a "v" prefix (2024 -> v2024), keywords get a trailing
    "_" (class -> class_).
    """
    s = snake_case(name)
    if not s:
        s = fallback
    if s[0].isdigit():
        s = f"v{s}"
    if keyword.iskeyword(s):
        s = f"{s}_"
    return s


# module-level names the generated handler and client modules bind or call,
# plus the client class's own methods
_GENERATED_NAMES = frozenset(
    {
        "annotations",
        "close",
        "default_host_url",
        "dict",
        "get_default_client",
        "isinstance",
        "logger",
        "logging",
        "models",
        "os",
        "threading",
    }
)


def handler_func_name(handler_name: str) -> str:
    """
    Python function name generated for an IDL handler.

    Import -> import_, 2FA -> v2_fa, Logger -> logger_. Every code path that
    turns a handler name into a function name goes through here.
    """
    s = sanitize_identifier(handler_name, fallback="handler")
    if s in _GENERATED_NAMES:
        s = f"{s}_"
    return s
