from pathlib import Path
import textwrap

from typer.testing import CliRunner

from routeforge.cli import app

FIXTURE = Path(__file__).parent / "fixtures" / "user.yaml"

runner = CliRunner(env={"COLUMNS": "200"})


def write(p: Path, s: str) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(textwrap.dedent(s), encoding="utf-8")


def test_tree_command():
    res = runner.invoke(app, ["tree", str(FIXTURE)])

    assert res.exit_code == 0, res.output
    assert "/users/:id" in res.output
    assert "get_user" in res.output
    assert "group mw auth" in res.output


def test_templates_command():
    res = runner.invoke(app, ["templates"])

    assert res.exit_code == 0, res.output
    assert "register" in res.output
    assert "insert_marker" in res.output
    assert "handler_single" in res.output
    assert "by_method" in res.output


def test_generate_then_regenerate(tmp_path: Path):
    out = tmp_path / "proj"

    res = runner.invoke(app, ["generate", str(FIXTURE), "--out", str(out)])
    assert res.exit_code == 0, res.output
    assert (out / "biz/router/user/routes.py").is_file()
    assert "def auth_mw()" in (out / "biz/router/user/middleware.py").read_text(encoding="utf-8")

    res = runner.invoke(app, ["generate", str(FIXTURE), "--out", str(out)])
    assert res.exit_code == 0, res.output
    assert "Written: 0" in res.output


def test_generate_dry_run(tmp_path: Path):
    out = tmp_path / "proj"
    res = runner.invoke(app, ["generate", str(FIXTURE), "--out", str(out), "--dry-run"])

    assert res.exit_code == 0, res.output
    assert "Dry run: 7 file(s) would be written." in res.output
    assert not out.exists()


def test_generate_handler_by_method(tmp_path: Path):
    out = tmp_path / "proj"
    res = runner.invoke(app, ["generate", str(FIXTURE), "--out", str(out), "--handler-by-method"])

    assert res.exit_code == 0, res.output
    assert "Written: 12" in res.output
    assert (out / "biz/handler/user/user_service/get_user.py").is_file()
    assert (out / "biz/router/user/handler_mw/get_user.py").is_file()
    assert not (out / "biz/handler/user/user_service.py").exists()

def test_generate_with_template_config(tmp_path: Path):
    cfg = tmp_path / "layouts.yaml"
    write(
        cfg,
        """
        layouts:
          - name: readme
            path: "README-{{ package }}.md"
            body: "# {{ package }}\\n"
        """,
    )
    out = tmp_path / "proj"
    res = runner.invoke(app, ["generate", str(FIXTURE), "--out", str(out), "--template-config", str(cfg)])

    assert res.exit_code == 0, res.output
    assert (out / "README-user.md").read_text(encoding="utf-8") == "# user\n"


def test_generate_missing_manifest(tmp_path: Path):
    res = runner.invoke(app, ["generate", str(tmp_path / "nope.yaml")])
    assert res.exit_code != 0


def test_generate_invalid_manifest(tmp_path: Path):
    idl = tmp_path / "bad.yaml"
    write(
        idl,
        """
        package: bad
        services:
          - name: S
            operations:
              - {method: GET, path: no-slash, handler_name: A}
        """,
    )
    res = runner.invoke(app, ["generate", str(idl), "--out", str(tmp_path / "proj")])

    assert res.exit_code == 1
    assert "invalid IDL manifest" in res.output


def test_generate_conflicting_routes(tmp_path: Path):
    idl = tmp_path / "dup.yaml"
    write(
        idl,
        """
        package: dup
        services:
          - name: S
            operations:
              - {method: GET, path: /ping, handler_name: Ping}
              - {method: GET, path: /ping, handler_name: PingAgain}
        """,
    )
    out = tmp_path / "proj"
    res = runner.invoke(app, ["generate", str(idl), "--out", str(out)])

    assert res.exit_code == 1
    assert "DuplicateRouteError" in res.output
    assert not out.exists()
