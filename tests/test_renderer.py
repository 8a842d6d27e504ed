import pytest

from routeforge.domain.errors import RenderError, TemplateConfigError
from routeforge.domain.models import OperationDescriptor
from routeforge.render.config import TemplateConfig, TemplateSpec, default_template_config
from routeforge.render.renderer import TemplateRenderer, route_path
from routeforge.tree.builder import build_route_tree


def renderer_for(*specs):
    return TemplateRenderer(TemplateConfig(layouts=list(specs)))


def test_undefined_field_is_an_error():
    r = renderer_for(TemplateSpec(name="t", path="out.txt", body="hello {{ missing }}"))
    with pytest.raises(RenderError) as exc:
        r.render("t", {})
    assert "missing" in str(exc.value)


def test_undefined_attribute_is_an_error():
    r = renderer_for(TemplateSpec(name="t", path="out.txt", body="{{ service.nope }}"))
    with pytest.raises(RenderError):
        r.render("t", {"service": {"name": "x"}})


def test_bad_syntax_is_a_render_error():
    r = renderer_for(TemplateSpec(name="t", path="out.txt", body="{% for x in %}"))
    with pytest.raises(RenderError):
        r.render("t", {})


def test_unknown_template():
    r = renderer_for()
    with pytest.raises(RenderError):
        r.render("nope", {})


def test_custom_delimiters_leave_default_syntax_alone():
    r = renderer_for(
        TemplateSpec(
            name="t",
            path="out.txt",
            delims=("[[", "]]"),
            body="[% for x in items %][[ x ]]={{ x }};[% endfor %]",
        )
    )
    assert r.render("t", {"items": ["a", "b"]}) == "a={{ x }};b={{ x }};"


def test_colliding_delimiters_are_rejected():
    with pytest.raises(TemplateConfigError):
        renderer_for(TemplateSpec(name="t", path="out.txt", delims=("%%", "%%"), body=""))


def test_templates_include_each_other():
    r = renderer_for(
        TemplateSpec(name="inner", path="inner.txt", body="hi {{ name }}"),
        TemplateSpec(name="outer", path="outer.txt", body='{% include "inner" %}!'),
    )
    assert r.render("outer", {"name": "x"}) == "hi x!"


def test_recursive_macro_walks_the_route_tree():
    tree = build_route_tree(
        [
            OperationDescriptor(method="GET", path="/users", handler_name="ListUsers"),
            OperationDescriptor(method="GET", path="/users/:id", handler_name="GetUser"),
            OperationDescriptor(method="GET", path="/health", handler_name="Health"),
        ]
    )
    body = (
        "{% macro show(n) %}{{ n.path }};{% for c in n.children %}{{ show(c) }}{% endfor %}{% endmacro %}"
        "{{ show(router) }}"
    )
    r = renderer_for(TemplateSpec(name="t", path="out.txt", body=body))
    assert r.render("t", {"router": tree}) == "/;/users;/users/:id;/health;"


def test_filters():
    r = renderer_for(
        TemplateSpec(
            name="t",
            path="out.txt",
            body="{{ 'GetUserByID' | snake }} {{ 'user_service' | camel }} {{ '/a/:id' | route_path | pyrepr }}",
        )
    )
    assert r.render("t", {}) == "get_user_by_id UserService '/a/{id}'"


def test_route_path():
    assert route_path("/users/:id") == "/users/{id}"
    assert route_path("/users/:id/posts/:post_id") == "/users/{id}/posts/{post_id}"
    assert route_path("/static/*filepath") == "/static/{filepath:path}"
    assert route_path("/plain") == "/plain"


def test_render_string_uses_default_delimiters():
    r = TemplateRenderer(default_template_config())
    assert r.render_string("{{ a }}/{{ b }}.py", {"a": "x", "b": "y"}) == "x/y.py"
    with pytest.raises(RenderError):
        r.render_string("{{ nope }}", {})


def test_trailing_newline_is_kept():
    r = renderer_for(TemplateSpec(name="t", path="out.txt", body="line\n"))
    assert r.render("t", {}) == "line\n"
