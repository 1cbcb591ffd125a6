# tests/conftest.py
import pytest

from snip.utils.tokenizer import Tokenizer

CONFIG_YAML = """\
version: 1
root: .
default_profile: api
budgets:
  max_chars: 120000
  per_file_max_lines: 600
slices:
  api:
    include: ["src/**"]
    exclude: ["src/**/test_*.py"]
    priority: 100
  tests:
    include: ["tests/**", "src/**/test_*.py"]
    priority: 40
  docs:
    include: ["README*", "docs/**"]
    priority: 20
  ci:
    include: [".github/**"]
    priority: 10
profiles:
  api:
    enable: [api, docs]
  debug:
    enable: [api, docs, tests, ci]
"""


@pytest.fixture(autouse=True)
def offline_tokenizer(monkeypatch):
    """tiktoken downloads encodings on first use; tests estimate instead."""
    monkeypatch.setattr(Tokenizer, "count", staticmethod(lambda text: len(text) // 4))


@pytest.fixture
def project(tmp_path):
    """
    A small repository with a config file:
    - source, tests, docs, CI workflow
    - a sensitive .env, a binary image, an ignored build dir
    - a .gitignore rule
    """
    root = tmp_path / "repo"
    (root / "src" / "app").mkdir(parents=True)
    (root / "tests").mkdir()
    (root / "docs").mkdir()
    (root / ".github" / "workflows").mkdir(parents=True)
    (root / "assets").mkdir()
    (root / "build").mkdir()

    (root / "src" / "app" / "main.py").write_text("def main():\n    return 1\n", encoding="utf-8")
    (root / "src" / "app" / "util.py").write_text("def util():\n    pass\n", encoding="utf-8")
    (root / "src" / "app" / "test_util.py").write_text("def test_util():\n    assert True\n", encoding="utf-8")
    (root / "tests" / "test_main.py").write_text("def test_main():\n    assert True\n", encoding="utf-8")
    (root / "README.md").write_text("# Repo\n", encoding="utf-8")
    (root / "docs" / "guide.md").write_text("Guide\n", encoding="utf-8")
    (root / ".github" / "workflows" / "ci.yml").write_text("on: push\n", encoding="utf-8")
    (root / ".env").write_text("TOKEN=abc\n", encoding="utf-8")
    (root / "assets" / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n\x00\x00")
    (root / "build" / "out.js").write_text("console.log(1)\n", encoding="utf-8")
    (root / ".gitignore").write_text("*.log\n", encoding="utf-8")
    (root / "debug.log").write_text("noise\n", encoding="utf-8")

    (root / ".snip.yaml").write_text(CONFIG_YAML, encoding="utf-8")
    return root
