# tests/test_cli.py
import pytest

from snip import app
from snip.cli import main, prepare_argv
from snip.config import SNIP_VERSION


@pytest.fixture(autouse=True)
def no_git(monkeypatch):
    monkeypatch.setattr(app, "short_sha", lambda root: None)


@pytest.fixture
def cfg(project):
    return str(project / ".snip.yaml")


# --- Test 1: Argument preparation ---

def test_prepare_argv_inserts_run():
    assert prepare_argv([]) == ["run"]
    assert prepare_argv(["api"]) == ["run", "api"]
    assert prepare_argv(["--config", "c.yaml", "api"]) == ["--config", "c.yaml", "run", "api"]
    assert prepare_argv(["ls", "api"]) == ["ls", "api"]
    assert prepare_argv(["--help"]) == ["--help"]


def test_prepare_argv_escapes_dash_modifiers():
    argv = prepare_argv(["api", "-docs", "+tests", "-o", "-out.md", "-q"])
    assert argv[:2] == ["run", "api"]
    assert argv[2] != "-docs" and argv[2].endswith("docs")
    assert argv[3:] == ["+tests", "-o", "-out.md", "-q"]
    assert prepare_argv(["init", "-x"]) == ["init", "-x"]


# --- Test 2: Commands end to end ---

def test_run_writes_bundle(cfg, tmp_path, capsys):
    out = tmp_path / "bundle.md"
    assert main(["--config", cfg, "run", "api", "-o", str(out)]) == 0
    assert capsys.readouterr().out.strip() == str(out)
    assert "## 1) src/app/main.py" in out.read_text(encoding="utf-8")


def test_bare_invocation_with_dash_modifier(cfg, tmp_path):
    out = tmp_path / "bundle.md"
    assert main(["--config", cfg, "api", "-docs", "-o", str(out), "--quiet"]) == 0
    text = out.read_text(encoding="utf-8")
    assert "enabled_slices: [api]" in text
    assert "README.md" not in text


def test_modifier_after_options(cfg, tmp_path):
    out = tmp_path / "bundle.md"
    assert main(["--config", cfg, "run", "api", "-o", str(out), "+tests", "-docs"]) == 0
    assert "enabled_slices: [api, tests]" in out.read_text(encoding="utf-8")


def test_run_to_stdout(cfg, capsys):
    assert main(["--config", cfg, "run", "--stdout", "--no-tree"]) == 0
    out = capsys.readouterr().out
    assert out.startswith("# snip bundle\n")
    assert "## Tree" not in out


def test_partial_exit_code(cfg, project, tmp_path, capsys):
    (project / "src" / "app" / "bad.py").write_bytes(b"x = 1\n\xff\n")
    out = tmp_path / "bundle.md"
    assert main(["--config", cfg, "run", "-o", str(out)]) == 4
    assert out.exists()
    assert capsys.readouterr().out.strip() == str(out)


def test_usage_errors(cfg, tmp_path):
    assert main(["--config", cfg, "run", "nope", "-o", str(tmp_path / "x.md")]) == 2
    assert main(["--config", cfg, "run", "+nope", "-o", str(tmp_path / "x.md")]) == 2
    assert main(["--config", str(tmp_path / "missing.yaml"), "run"]) == 2
    assert main(["--config", cfg, "run", "--max-chars", "0"]) == 2
    assert not (tmp_path / "x.md").exists()


def test_unknown_argument_is_rejected(cfg):
    with pytest.raises(SystemExit) as exc:
        main(["--config", cfg, "run", "api", "--bogus"])
    assert exc.value.code == 2


def test_ls(cfg, capsys):
    assert main(["--config", cfg, "ls", "debug"]) == 0
    out = capsys.readouterr().out
    assert "Enabled slices: [api, tests, docs, ci]" in out
    assert ".github/workflows/ci.yml" in out
    assert "Total files: 7" in out


def test_explain(cfg, capsys):
    assert main(["--config", cfg, "explain", ".github/workflows/ci.yml", "--profile", "debug"]) == 0
    assert "primary_slice: ci" in capsys.readouterr().out


def test_version(capsys):
    assert main(["version"]) == 0
    assert capsys.readouterr().out.strip() == f"snip {SNIP_VERSION}"


def test_init_then_run(tmp_path, capsys, monkeypatch):
    monkeypatch.delenv("SNIP_CONFIG", raising=False)
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "main.py").write_text("print('main')\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)

    assert main(["init"]) == 0
    assert (tmp_path / ".snip.yaml").exists()
    assert main(["init"]) == 2

    assert main(["run", "-o", "bundle.md"]) == 0
    assert "print('main')" in (tmp_path / "bundle.md").read_text(encoding="utf-8")


def test_apply(tmp_path, capsys):
    reply = tmp_path / "reply.md"
    reply.write_text("### FILE: pkg/a.py\n```python\nA = 1\n```\n", encoding="utf-8")
    root = tmp_path / "target"
    root.mkdir()

    args = ["--root", str(root), "apply", str(reply), "--header", "### FILE: {path}"]
    assert main(args) == 0
    assert "would create: pkg/a.py" in capsys.readouterr().out
    assert not (root / "pkg" / "a.py").exists()

    assert main(args + ["--write"]) == 0
    assert (root / "pkg" / "a.py").read_text(encoding="utf-8") == "A = 1\n"
    assert main(args + ["--write"]) == 2
    assert main(args + ["--write", "--force"]) == 0


def test_apply_requires_header(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("SNIP_CONFIG", raising=False)
    reply = tmp_path / "reply.md"
    reply.write_text("x\n", encoding="utf-8")
    assert main(["apply", str(reply)]) == 2


def test_keyboard_interrupt(cfg, monkeypatch, capsys):
    def interrupted(opts):
        raise KeyboardInterrupt

    monkeypatch.setattr(app, "run", interrupted)
    assert main(["--config", cfg, "run"]) == 1
    assert "Cancelled." in capsys.readouterr().err


def test_doctor(cfg, capsys):
    assert main(["--config", cfg, "doctor", "--profile", "debug", "-docs"]) == 0
    out = capsys.readouterr().out
    assert "enabled_slices: [api, tests, ci]" in out
    assert "top_exclusion_reasons:" in out


def test_relative_root_with_config_elsewhere(project, tmp_path, monkeypatch, capsys):
    cfg_dir = tmp_path / "cfg"
    cfg_dir.mkdir()
    (cfg_dir / ".snip.yaml").write_text((project / ".snip.yaml").read_text(encoding="utf-8"), encoding="utf-8")
    monkeypatch.chdir(tmp_path)

    assert main(["--config", "cfg/.snip.yaml", "--root", project.name, "run", "--stdout"]) == 0
    assert "## 1) src/app/main.py" in capsys.readouterr().out
