# tests/test_scanner.py
import os

import pytest

from snip.config import DEFAULT_IGNORE_PATTERNS, DEFAULT_SENSITIVE_GLOBS
from snip.core.ignore import GitignoreRules, glob_match, is_hidden_path, names_hidden_segment
from snip.core.scanner import ProjectScanner, ScanRules
from snip.errors import Cancelled, TraversalError
from snip.models import Reason


@pytest.fixture
def rules():
    return ScanRules(
        always_ignore=DEFAULT_IGNORE_PATTERNS,
        sensitive=DEFAULT_SENSITIVE_GLOBS,
        binary_extensions=(".png",),
        use_gitignore=True,
    )


def _by_path(candidates):
    return {c.rel_path: c for c in candidates}


# --- Test 1: Glob semantics ---

def test_glob_anchored_at_root():
    assert glob_match("src/**", "src/a/b.py")
    assert not glob_match("src/**", "lib/src/b.py")
    assert glob_match("**/*.py", "a.py")
    assert glob_match("**/*.py", "a/b/c.py")
    assert not glob_match("*.py", "a/b.py")


def test_glob_matches_whole_path():
    assert glob_match("src/*", "src/a.py")
    assert not glob_match("src/*", "src/pkg/deep.py")
    assert not glob_match("docs", "docs/guide.md")
    assert glob_match("docs", "docs")
    assert not glob_match("**/*secret*", "secrets/config.py")
    assert glob_match("**/*secret*", "app/client_secret.json")
    assert glob_match("src/**", "src")
    assert glob_match("build/**", "build/")


def test_glob_classes_and_braces():
    assert glob_match("src/*.{py,pyi}", "src/a.pyi")
    assert not glob_match("src/*.{py,pyi}", "src/a.pyc")
    assert glob_match("log[0-9].txt", "log7.txt")
    assert not glob_match("log[!0-9].txt", "log7.txt")
    assert glob_match("a?c", "abc")
    assert not glob_match("a?c", "a/c")
    assert glob_match("a/**/z.py", "a/z.py")
    assert glob_match("a/**/z.py", "a/b/c/z.py")


@pytest.mark.parametrize("pattern", ["", "   ", "src/[abc", "src/{a,b", "src/a\\"])
def test_invalid_glob_never_matches(pattern):
    assert not glob_match(pattern, "src/a")
    assert not glob_match(pattern, "src/[abc")


def test_hidden_detection():
    assert is_hidden_path(".github/workflows/ci.yml")
    assert is_hidden_path("src/.env")
    assert not is_hidden_path("src/main.py")
    assert names_hidden_segment(".github/**")
    assert names_hidden_segment("**/.env*")
    assert not names_hidden_segment("**/*.yml")
    assert not names_hidden_segment("./src/**")


# --- Test 2: Classification ---

def test_scan_reasons(project, rules):
    found = _by_path(ProjectScanner(project, rules).scan())

    assert not found["src/app/main.py"].excluded
    assert found[".env"].reason is Reason.SENSITIVE_RULE
    assert found["assets/logo.png"].reason is Reason.BINARY
    assert found["debug.log"].reason is Reason.VCS_IGNORE_RULE
    # Ignored directories are pruned, not reported.
    assert "build/out.js" not in found
    assert found[".github/workflows/ci.yml"].hidden


def test_scan_sorted_by_path(project, rules):
    paths = [c.rel_path for c in ProjectScanner(project, rules).scan()]
    assert paths == sorted(paths, key=lambda p: p.encode("utf-8"))


def test_sensitive_wins_over_gitignore(tmp_path, rules):
    (tmp_path / ".gitignore").write_text(".env\n", encoding="utf-8")
    (tmp_path / ".env").write_text("A=1\n", encoding="utf-8")
    found = _by_path(ProjectScanner(tmp_path, rules).scan())
    assert found[".env"].reason is Reason.SENSITIVE_RULE


def test_binary_sniff(tmp_path, rules):
    (tmp_path / "data.bin").write_bytes(b"abc\x00def")
    (tmp_path / "noisy.dat").write_bytes(bytes(range(128, 256)))
    (tmp_path / "text.txt").write_text("plain text\n", encoding="utf-8")
    found = _by_path(ProjectScanner(tmp_path, rules).scan())
    assert found["data.bin"].reason is Reason.BINARY
    assert found["noisy.dat"].reason is Reason.BINARY
    assert not found["text.txt"].excluded


def test_nested_gitignore_is_scoped(tmp_path, rules):
    sub = tmp_path / "sub"
    sub.mkdir()
    (sub / ".gitignore").write_text("*.tmp\n", encoding="utf-8")
    (sub / "x.tmp").write_text("x\n", encoding="utf-8")
    (tmp_path / "x.tmp").write_text("x\n", encoding="utf-8")

    found = _by_path(ProjectScanner(tmp_path, rules).scan())
    assert found["sub/x.tmp"].reason is Reason.VCS_IGNORE_RULE
    assert not found["x.tmp"].excluded


def test_gitignore_disabled(project):
    rules = ScanRules(always_ignore=DEFAULT_IGNORE_PATTERNS, use_gitignore=False)
    found = _by_path(ProjectScanner(project, rules).scan())
    assert not found["debug.log"].excluded


def test_gitignored_directory_is_pruned(tmp_path, rules):
    (tmp_path / ".gitignore").write_text("out/\n", encoding="utf-8")
    (tmp_path / "out").mkdir()
    (tmp_path / "out" / "a.txt").write_text("a\n", encoding="utf-8")
    found = _by_path(ProjectScanner(tmp_path, rules).scan())
    assert "out/a.txt" not in found


def test_gitignore_rules_negation():
    g = GitignoreRules()
    g.extend(["*.log", "!keep.log"])
    assert g.matches("a.log")
    assert not g.matches("keep.log")


def test_symlinks_are_skipped(tmp_path, rules):
    target = tmp_path / "real.txt"
    target.write_text("real\n", encoding="utf-8")
    try:
        (tmp_path / "link.txt").symlink_to(target)
    except (OSError, NotImplementedError):
        pytest.skip("symlinks not supported")
    found = _by_path(ProjectScanner(tmp_path, rules).scan())
    assert "real.txt" in found
    assert "link.txt" not in found


def test_missing_root_raises(tmp_path, rules):
    with pytest.raises(TraversalError):
        ProjectScanner(tmp_path / "missing", rules).scan()


def test_scan_cancelled(project, rules):
    with pytest.raises(Cancelled):
        ProjectScanner(project, rules, should_stop=lambda: True).scan()


def test_open_failure_is_unreadable(tmp_path, rules, monkeypatch):
    (tmp_path / "locked.txt").write_text("x\n", encoding="utf-8")
    (tmp_path / "ok.txt").write_text("ok\n", encoding="utf-8")
    real_sniff = ProjectScanner._sniff

    def sniff(self, path):
        if path.name == "locked.txt":
            raise PermissionError(13, "Permission denied", str(path))
        return real_sniff(self, path)

    monkeypatch.setattr(ProjectScanner, "_sniff", sniff)
    found = _by_path(ProjectScanner(tmp_path, rules).scan())
    assert found["locked.txt"].reason is Reason.UNREADABLE
    assert "Permission denied" in found["locked.txt"].detail
    assert not found["ok.txt"].excluded


def test_stat_failure_is_unreadable(tmp_path, rules, monkeypatch):
    (tmp_path / "gone.txt").write_text("x\n", encoding="utf-8")
    real_lstat = os.lstat

    def lstat(path, *args, **kwargs):
        if os.fspath(path).endswith("gone.txt"):
            raise FileNotFoundError(2, "No such file or directory", os.fspath(path))
        return real_lstat(path, *args, **kwargs)

    scanner = ProjectScanner(tmp_path, rules)
    monkeypatch.setattr(os, "lstat", lstat)
    found = _by_path(scanner.scan())
    assert found["gone.txt"].excluded
    assert found["gone.txt"].reason is Reason.UNREADABLE
    assert "No such file" in found["gone.txt"].detail


def test_sensitive_glob_does_not_cover_directory(tmp_path, rules):
    (tmp_path / "secrets").mkdir()
    (tmp_path / "secrets" / "loader.py").write_text("x = 1\n", encoding="utf-8")
    (tmp_path / "client_secret.json").write_text("{}\n", encoding="utf-8")
    found = _by_path(ProjectScanner(tmp_path, rules).scan())
    assert not found["secrets/loader.py"].excluded
    assert found["client_secret.json"].reason is Reason.SENSITIVE_RULE
