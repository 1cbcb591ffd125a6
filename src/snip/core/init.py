# src/snip/core/init.py
import logging
from dataclasses import replace
from pathlib import Path
from typing import Callable, Dict, List

from snip.config import CONFIG_FILENAME, Profile, default_config, validate, write_config
from snip.errors import ConfigError
from snip.models import Slice

logger = logging.getLogger(__name__)

SOURCE_DIRS = ("src", "internal", "cmd", "pkg", "lib", "app")
TEST_DIRS = ("tests", "test")


def _starter_slices(root: Path) -> Dict[str, Slice]:
    def has_dir(name: str) -> bool:
        return (root / name).is_dir()

    api: List[str] = [f"{d}/**" for d in SOURCE_DIRS if has_dir(d)]
    if not api:
        api = ["**/*.py", "**/*.go", "**/*.js", "**/*.ts", "**/*.rs", "**/*.java"]
    tests = [f"{d}/**" for d in TEST_DIRS if has_dir(d)] + ["**/*_test.go", "**/test_*.py"]
    docs = ["README*"] + (["docs/**"] if has_dir("docs") else [])
    configs = ["**/*.yaml", "**/*.yml", "**/*.json", "**/*.toml", "**/*.ini"]
    if has_dir(".github"):
        configs.append(".github/**")

    return {
        "api": Slice("api", include=tuple(api), exclude=tuple(tests), priority=100),
        "tests": Slice("tests", include=tuple(tests), priority=40),
        "docs": Slice("docs", include=tuple(docs), priority=20),
        "configs": Slice("configs", include=tuple(configs), priority=15),
    }


def init_config(
    root: Path,
    force: bool = False,
    interactive: bool = False,
    input_fn: Callable[[str], str] = input,
) -> Path:
    """
    Writes a starter .snip.yaml at the root.
    Refuses to overwrite an existing file unless `force` is set.
    """
    root = Path(root).resolve()
    if not root.is_dir():
        raise ConfigError(f"root is not a directory: {root}")
    target = root / CONFIG_FILENAME
    if target.exists() and not force:
        raise ConfigError(f"{target} already exists (use --force to overwrite)")

    cfg = default_config()
    if interactive and (root / ".gitignore").exists():
        # Side-effect: input() for interactive mode
        choice = input_fn("> Found .gitignore. Honor its rules when bundling? (Y/n): ").strip().lower()
        if choice == "n":
            cfg = replace(cfg, ignore=replace(cfg.ignore, use_gitignore=False))

    slices = _starter_slices(root)
    profiles = {
        "api": Profile("api", enable=("api", "configs", "docs")),
        "debug": Profile("debug", enable=("api", "configs", "docs", "tests")),
    }
    cfg = replace(cfg, name=root.name, slices=slices, profiles=profiles, default_profile="api")
    validate(cfg)

    write_config(target, cfg)
    logger.info("wrote %s", target)
    return target

