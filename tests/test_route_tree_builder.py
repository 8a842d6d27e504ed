import pytest
from pydantic import ValidationError

from routeforge.domain.errors import ConflictingMiddlewareError, DuplicateRouteError, RouteTreeError
from routeforge.domain.models import ALL_METHODS, OperationDescriptor
from routeforge.tree.builder import build_route_tree, disambiguate, group_name_for_segment


def ops(*rows):
    return [OperationDescriptor(method=m, path=p, handler_name=h, service="UserService") for m, p, h in rows]


def test_users_group_into_one_subtree():
    root = build_route_tree(
        ops(
            ("GET", "/users", "ListUsers"),
            ("GET", "/users/:id", "GetUser"),
            ("POST", "/users", "CreateUser"),
        )
    )

    assert root.is_root
    assert root.handlers == []
    assert [c.path for c in root.children] == ["/users"]

    users = root.children[0]
    assert users.group_name == "users"
    assert users.var_name == "_users"
    assert [(h.method, h.name) for h in users.handlers] == [("GET", "ListUsers"), ("POST", "CreateUser")]

    assert [c.path for c in users.children] == ["/users/:id"]
    by_id = users.children[0]
    assert by_id.group_name == "id"
    assert by_id.var_name == "_users__id"
    assert by_id.handler_for("GET").func_name == "get_user"
    assert by_id.handler_for("POST") is None


def test_default_middleware_and_comment():
    root = build_route_tree(ops(("GET", "/users/:id", "GetUser")))
    h = root.all_handlers()[0]

    assert h.middleware == "_get_user"
    assert h.comment == "GET /users/:id"
    assert h.service_module == "user_service"


def test_duplicate_method_and_path_is_rejected():
    with pytest.raises(DuplicateRouteError) as exc:
        build_route_tree(ops(("GET", "/ping", "Ping"), ("GET", "/ping", "PingAgain")))
    assert exc.value.path == "/ping"


def test_any_conflicts_with_every_method_on_the_path():
    with pytest.raises(DuplicateRouteError):
        build_route_tree(ops(("ANY", "/hook", "Hook"), ("POST", "/hook", "PostHook")))
    with pytest.raises(DuplicateRouteError):
        build_route_tree(ops(("DELETE", "/hook", "DropHook"), ("ANY", "/hook", "Hook")))


def test_any_registers_every_verb():
    root = build_route_tree(ops(("ANY", "/hook", "Hook")))
    assert root.children[0].handlers[0].methods == list(ALL_METHODS)


def test_handler_names_mapping_to_one_function_are_rejected():
    with pytest.raises(DuplicateRouteError):
        build_route_tree(ops(("GET", "/a", "GetItem"), ("GET", "/b", "get_item")))


def test_children_keep_first_seen_order():
    root = build_route_tree(
        ops(
            ("GET", "/zeta", "Zeta"),
            ("GET", "/alpha", "Alpha"),
            ("GET", "/zeta/x", "ZetaX"),
            ("GET", "/mid", "Mid"),
        )
    )
    assert [c.path for c in root.children] == ["/zeta", "/alpha", "/mid"]


def test_building_twice_gives_the_same_tree():
    rows = (
        ("GET", "/a/b/c", "C"),
        ("PUT", "/a/b", "B"),
        ("GET", "/a-b", "Dash"),
        ("GET", "/a_b", "Under"),
    )
    assert build_route_tree(ops(*rows)) == build_route_tree(ops(*rows))


def test_sibling_names_are_disambiguated():
    root = build_route_tree(ops(("GET", "/user-list", "Dashed"), ("GET", "/user_list", "Underscored")))

    names = [c.group_name for c in root.children]
    assert names == ["user_list", "user_list_2"]
    assert [c.var_name for c in root.children] == ["_user_list", "_user_list_2"]


def test_var_names_are_unique_across_the_whole_tree():
    root = build_route_tree(
        ops(
            ("GET", "/a/b", "AB"),
            ("GET", "/a_b", "A_B"),
            ("GET", "/a/b/c", "ABC"),
        )
    )
    var_names = [n.var_name for n in root.walk()]
    assert len(var_names) == len(set(var_names))


def test_prefix_without_handlers_or_children_is_pruned():
    descriptors = [
        OperationDescriptor(path="/admin/settings", group_middleware="admin_only"),
        *ops(("GET", "/users", "ListUsers")),
    ]
    root = build_route_tree(descriptors)
    assert [c.path for c in root.children] == ["/users"]


def test_intermediate_prefix_survives_through_its_children():
    root = build_route_tree(ops(("GET", "/api/v1/users", "ListUsers")))

    api = root.children[0]
    assert api.path == "/api"
    assert api.handlers == []
    assert api.children[0].path == "/api/v1"
    assert api.children[0].children[0].path == "/api/v1/users"


def test_explicit_group_middleware():
    descriptors = [
        OperationDescriptor(path="/users", group_middleware="auth"),
        *ops(("GET", "/users/:id", "GetUser")),
    ]
    root = build_route_tree(descriptors)
    assert root.children[0].group_middleware == "auth"


def test_conflicting_group_middleware_is_rejected():
    descriptors = [
        OperationDescriptor(path="/users", group_middleware="auth"),
        OperationDescriptor(path="/users", group_middleware="audit"),
    ]
    with pytest.raises(ConflictingMiddlewareError) as exc:
        build_route_tree(descriptors)
    assert exc.value.path == "/users"


def test_handler_on_root_path():
    root = build_route_tree(ops(("GET", "/", "Index")))
    assert [h.name for h in root.handlers] == ["Index"]
    assert root.children == []


def test_middleware_tags_in_tree_order():
    root = build_route_tree(
        ops(
            ("GET", "/users", "ListUsers"),
            ("GET", "/users/:id", "GetUser"),
            ("POST", "/users", "CreateUser"),
        )
    )
    # /users/:id has no children, so it never forms a group of its own
    assert root.middleware_tags() == ["group_users", "_list_users", "_create_user", "_get_user"]
    assert root.middleware_tags(include_handlers=False) == ["group_users"]


def test_descriptor_validation():
    assert OperationDescriptor(method="get", path="/users/").method == "GET"
    assert OperationDescriptor(method="get", path="//users//").path == "/users"

    with pytest.raises(ValidationError):
        OperationDescriptor(method="GET", path="users")
    with pytest.raises(ValidationError):
        OperationDescriptor(path="/users", handler_name="ListUsers")
    with pytest.raises(ValidationError):
        OperationDescriptor(method="GET", path="/users", request_type="not valid")


def test_disambiguate():
    assert disambiguate("users", []) == "users"
    assert disambiguate("users", ["users"]) == "users_2"
    assert disambiguate("users", ["users", "users_2"]) == "users_3"
    assert disambiguate("users", ["users", "users_3"]) == "users_2"


def test_group_name_for_segment():
    assert group_name_for_segment(":id") == "id"
    assert group_name_for_segment("{id}") == "id"
    assert group_name_for_segment("{file:path}") == "file"
    assert group_name_for_segment("*filepath") == "filepath"
    assert group_name_for_segment("User-List") == "user_list"
    assert group_name_for_segment("2024") == "v2024"
    assert group_name_for_segment("class") == "class_"
    assert group_name_for_segment("---") == "group"


def test_group_and_handler_default_tags_never_collide():
    # handler "Users" on /users and the /users group both default to a hook
    root = build_route_tree(ops(("GET", "/users", "Users"), ("GET", "/users/:id", "GetUser")))
    users = root.children[0]

    assert users.group_middleware == "group_users"
    assert users.handler_for("GET").middleware == "_users"
    assert root.middleware_tags() == ["group_users", "_users", "_get_user"]


def test_group_middleware_on_root_is_rejected():
    descriptors = [
        OperationDescriptor(path="/", group_middleware="auth"),
        *ops(("GET", "/users", "ListUsers")),
    ]
    with pytest.raises(RouteTreeError) as exc:
        build_route_tree(descriptors)
    assert exc.value.path == "/"


def test_handler_names_become_valid_function_names():
    root = build_route_tree(
        ops(
            ("GET", "/import", "Import"),
            ("GET", "/class", "Class"),
            ("POST", "/otp", "2FA"),
            ("GET", "/log", "Logger"),
        )
    )

    assert [h.func_name for h in root.all_handlers()] == ["import_", "class_", "v2_fa", "logger_"]
    assert [h.middleware for h in root.all_handlers()] == ["_import_", "_class_", "_v2_fa", "_logger_"]


def test_keyword_and_plain_spelling_of_one_function_are_rejected():
    with pytest.raises(DuplicateRouteError):
        build_route_tree(ops(("GET", "/a", "Import"), ("GET", "/b", "Import_")))
