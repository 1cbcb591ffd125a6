# src/snip/core/output.py
import logging
import os
import re
import subprocess
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"\{[A-Za-z0-9_]+\}")
DEFAULT_GITSHA = "000000"


def atomic_write(path: Path, text: str) -> None:
    """Writes text next to `path` in a temp file, then renames it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def collapse_separators(name: str) -> str:
    """Collapses runs of '_', '-', '.' left behind by empty tokens."""
    for sep in ("_", "-", "."):
        doubled = sep * 2
        while doubled in name:
            name = name.replace(doubled, sep)
    return name.strip("_-.")


def apply_pattern_tokens(pattern: str, values: Dict[str, str]) -> str:
    """Substitutes {token} placeholders. Unknown tokens are preserved."""
    def _sub(m: "re.Match[str]") -> str:
        key = m.group(0)[1:-1]
        return values.get(key, m.group(0))

    return collapse_separators(_TOKEN_RE.sub(_sub, pattern))


class FileCounter:
    """Run counter persisted as a 'counter' file inside a directory."""

    def __init__(self, directory: Path):
        self.path = Path(directory) / "counter"

    def next(self) -> int:
        current = 0
        try:
            text = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            text = ""
        if text:
            try:
                current = int(text)
            except ValueError as e:
                raise ValueError(f"parse counter: {e}") from e
        value = current + 1
        atomic_write(self.path, f"{value}\n")
        return value


def short_sha(root: Path) -> Optional[str]:
    """Short revision id of HEAD, or None when git is unavailable."""
    try:
        proc = subprocess.run(
            ["git", "rev-parse", "--short", "HEAD"],
            cwd=root,
            capture_output=True,
            text=True,
            timeout=10,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug("git rev-parse failed: %s", e)
        return None
    if proc.returncode != 0:
        logger.debug("git rev-parse exited %d: %s", proc.returncode, proc.stderr.strip())
        return None
    return proc.stdout.strip() or None


def write_explicit_output(path: str, rendered: str) -> Path:
    target = Path(path)
    if not target.is_absolute():
        target = Path.cwd() / target
    target = Path(os.path.normpath(target))
    atomic_write(target, rendered)
    return target


def write_default_output(
    root: Path,
    out_dir: str,
    pattern: str,
    latest: str,
    profile: str,
    gitsha: str,
    now: datetime,
    rendered: str,
    counter: Optional[FileCounter] = None,
) -> Path:
    """Writes the bundle into the output directory plus an optional 'latest' copy."""
    directory = Path(out_dir or ".snip")
    if not directory.is_absolute():
        directory = root / directory
    directory.mkdir(parents=True, exist_ok=True)

    tokens = {
        "ts": now.strftime("%Y%m%d-%H%M%S"),
        "profile": profile,
        "gitsha": gitsha,
        "repo": root.name,
        "name": root.name,
    }
    if "{counter}" in pattern:
        provider = counter or FileCounter(directory)
        tokens["counter"] = f"{provider.next():03d}"

    file_name = apply_pattern_tokens(pattern, tokens)
    file_name = Path(file_name.replace("/", "_").replace("\\", "_")).name
    if not file_name.lower().endswith(".md"):
        file_name += ".md"

    out_path = directory / file_name
    atomic_write(out_path, rendered)

    if latest:
        atomic_write(directory / Path(latest).name, rendered)
    return out_path
