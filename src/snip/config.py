# src/snip/config.py
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from snip.core.output import atomic_write
from snip.errors import ConfigError
from snip.models import Slice

SNIP_VERSION = "0.1.0"
CONFIG_FILENAME = ".snip.yaml"
CONFIG_ENV_VAR = "SNIP_CONFIG"

DEFAULT_IGNORE_PATTERNS = (
    ".git/**",
    "node_modules/**",
    "dist/**",
    "build/**",
    ".venv/**",
    "venv/**",
    "__pycache__/**",
    ".pytest_cache/**",
    "coverage/**",
    "target/**",
    ".snip/**",
)

DEFAULT_BINARY_EXTENSIONS = (
    ".png", ".jpg", ".jpeg", ".gif", ".pdf", ".zip", ".tar", ".gz", ".7z",
    ".exe", ".dll", ".so", ".dylib",
)

DEFAULT_SENSITIVE_GLOBS = (
    ".env*",
    "**/*secret*",
    "**/*secrets*",
    "**/*.pem",
    "**/*.key",
    "**/id_rsa*",
    "**/*serviceAccount*.json",
)

DROP_LOW_PRIORITY = "drop_low_priority"


@dataclass(frozen=True)
class OutputConfig:
    dir: str = ".snip"
    pattern: str = "snip_{profile}_{ts}_{gitsha}.md"
    latest: str = "last.md"
    stdout_default: bool = False


@dataclass(frozen=True)
class ManifestConfig:
    group_by_slice: bool = True
    include_line_counts: bool = True
    include_byte_counts: bool = True
    include_truncation_notes: bool = True
    include_unreadable_notes: bool = True


@dataclass(frozen=True)
class FileBlockConfig:
    header: str = ""
    footer: str = ""


@dataclass(frozen=True)
class RenderConfig:
    format: str = "md"
    newline: str = "\n"
    code_fences: bool = True
    include_tree: bool = True
    tree_depth: int = 4
    include_manifest: bool = True
    manifest: ManifestConfig = field(default_factory=ManifestConfig)
    file_block: FileBlockConfig = field(default_factory=FileBlockConfig)


@dataclass(frozen=True)
class BudgetConfig:
    max_chars: int = 120_000
    per_file_max_lines: int = 600
    per_file_max_bytes: int = 262_144
    drop_policy: str = DROP_LOW_PRIORITY


@dataclass(frozen=True)
class IgnoreConfig:
    use_gitignore: bool = True
    always: Tuple[str, ...] = DEFAULT_IGNORE_PATTERNS
    binary_extensions: Tuple[str, ...] = DEFAULT_BINARY_EXTENSIONS


@dataclass(frozen=True)
class Profile:
    name: str
    enable: Tuple[str, ...] = ()
    max_chars: Optional[int] = None
    tree_depth: Optional[int] = None


@dataclass(frozen=True)
class Config:
    """Fully merged and validated configuration."""
    version: int = 1
    root: str = "."
    name: str = ""
    default_profile: str = ""
    output: OutputConfig = field(default_factory=OutputConfig)
    render: RenderConfig = field(default_factory=RenderConfig)
    budgets: BudgetConfig = field(default_factory=BudgetConfig)
    ignore: IgnoreConfig = field(default_factory=IgnoreConfig)
    sensitive_globs: Tuple[str, ...] = DEFAULT_SENSITIVE_GLOBS
    slices: Dict[str, Slice] = field(default_factory=dict)
    profiles: Dict[str, Profile] = field(default_factory=dict)

    def slice_priorities(self, names) -> Dict[str, int]:
        return {name: self.slices[name].priority for name in names}


def default_config() -> Config:
    """Returns a conservative default config (no slices or profiles yet)."""
    return Config(default_profile="api")


def find_config_path(explicit: Optional[str] = None) -> Path:
    """Resolves --config, then $SNIP_CONFIG, then .snip.yaml in the cwd."""
    if explicit:
        return Path(explicit)
    env = os.environ.get(CONFIG_ENV_VAR, "").strip()
    if env:
        return Path(env)
    return Path.cwd() / CONFIG_FILENAME


def load_config(path: Path) -> Config:
    """Reads a YAML config, fills in defaults and validates it."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"read config: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"parse yaml: {e}") from e

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError("config must be a mapping")

    version = raw.get("version") or 1
    if version != 1:
        raise ConfigError(f"unsupported config version {version}")

    cfg = _from_dict(raw)
    validate(cfg)
    return cfg


def _section(raw: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = raw.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{key} must be a mapping")
    return value


def _str_tuple(value: Any, key: str, default: Tuple[str, ...] = ()) -> Tuple[str, ...]:
    if value is None:
        return default
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        raise ConfigError(f"{key} must be a list of strings")
    return tuple(str(v) for v in value)


def _int(value: Any, key: str, default: int) -> int:
    if value is None or value == 0:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{key} must be an integer")
    return value


def _bool(value: Any, key: str, default: bool) -> bool:
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ConfigError(f"{key} must be true or false")
    return value


def _from_dict(raw: Dict[str, Any]) -> Config:
    defaults = default_config()

    out_raw = _section(raw, "output")
    output = OutputConfig(
        dir=out_raw.get("dir") or defaults.output.dir,
        pattern=out_raw.get("pattern") or defaults.output.pattern,
        latest=out_raw.get("latest", defaults.output.latest) or "",
        stdout_default=_bool(out_raw.get("stdout_default"), "output.stdout_default", False),
    )

    render_raw = _section(raw, "render")
    manifest_raw = _section(render_raw, "manifest")
    block_raw = _section(render_raw, "file_block")
    manifest = ManifestConfig(**{
        name: _bool(manifest_raw.get(name), f"render.manifest.{name}", True)
        for name in ManifestConfig.__dataclass_fields__
    })
    render = RenderConfig(
        format=render_raw.get("format") or "md",
        newline=render_raw.get("newline") or "\n",
        code_fences=_bool(render_raw.get("code_fences"), "render.code_fences", True),
        include_tree=_bool(render_raw.get("include_tree"), "render.include_tree", True),
        tree_depth=_int(render_raw.get("tree_depth"), "render.tree_depth", 4),
        include_manifest=_bool(render_raw.get("include_manifest"), "render.include_manifest", True),
        manifest=manifest,
        file_block=FileBlockConfig(
            header=str(block_raw.get("header") or ""),
            footer=str(block_raw.get("footer") or ""),
        ),
    )

    budgets_raw = _section(raw, "budgets")
    budgets = BudgetConfig(
        max_chars=_int(budgets_raw.get("max_chars"), "budgets.max_chars", defaults.budgets.max_chars),
        per_file_max_lines=_int(
            budgets_raw.get("per_file_max_lines"), "budgets.per_file_max_lines",
            defaults.budgets.per_file_max_lines),
        per_file_max_bytes=_int(
            budgets_raw.get("per_file_max_bytes"), "budgets.per_file_max_bytes",
            defaults.budgets.per_file_max_bytes),
        drop_policy=budgets_raw.get("drop_policy") or DROP_LOW_PRIORITY,
    )

    ignore_raw = _section(raw, "ignore")
    ignore = IgnoreConfig(
        use_gitignore=_bool(ignore_raw.get("use_gitignore"), "ignore.use_gitignore", True),
        always=_str_tuple(ignore_raw.get("always"), "ignore.always", DEFAULT_IGNORE_PATTERNS),
        binary_extensions=_str_tuple(
            ignore_raw.get("binary_extensions"), "ignore.binary_extensions", DEFAULT_BINARY_EXTENSIONS),
    )

    sensitive_raw = _section(raw, "sensitive")
    sensitive = _str_tuple(sensitive_raw.get("exclude_globs"), "sensitive.exclude_globs", DEFAULT_SENSITIVE_GLOBS)

    slices: Dict[str, Slice] = {}
    for name, body in _section(raw, "slices").items():
        body = body or {}
        if not isinstance(body, dict):
            raise ConfigError(f"slice {name!r} must be a mapping")
        slices[str(name)] = Slice(
            name=str(name),
            include=_str_tuple(body.get("include"), f"slices.{name}.include"),
            exclude=_str_tuple(body.get("exclude"), f"slices.{name}.exclude"),
            priority=_int(body.get("priority"), f"slices.{name}.priority", 0),
        )

    profiles: Dict[str, Profile] = {}
    for name, body in _section(raw, "profiles").items():
        body = body or {}
        if not isinstance(body, dict):
            raise ConfigError(f"profile {name!r} must be a mapping")
        p_budgets = _section(body, "budgets")
        p_render = _section(body, "render")
        profiles[str(name)] = Profile(
            name=str(name),
            enable=_str_tuple(body.get("enable"), f"profiles.{name}.enable"),
            max_chars=p_budgets.get("max_chars") or None,
            tree_depth=p_render.get("tree_depth") or None,
        )

    default_profile = raw.get("default_profile") or ""
    if not default_profile and profiles:
        default_profile = "api" if "api" in profiles else sorted(profiles)[0]

    return Config(
        version=1,
        root=raw.get("root") or ".",
        name=raw.get("name") or "",
        default_profile=default_profile,
        output=output,
        render=render,
        budgets=budgets,
        ignore=ignore,
        sensitive_globs=sensitive,
        slices=slices,
        profiles=profiles,
    )


def validate(cfg: Config) -> None:
    """Enforces schema constraints. Raises ConfigError on the first problem."""
    if cfg.version != 1:
        raise ConfigError("version must be 1")
    if cfg.budgets.max_chars <= 0:
        raise ConfigError("budgets.max_chars must be > 0")
    if cfg.budgets.per_file_max_lines <= 0:
        raise ConfigError("budgets.per_file_max_lines must be > 0")
    if cfg.budgets.per_file_max_bytes <= 0:
        raise ConfigError("budgets.per_file_max_bytes must be > 0")
    if cfg.budgets.drop_policy != DROP_LOW_PRIORITY:
        raise ConfigError(f"budgets.drop_policy must be '{DROP_LOW_PRIORITY}'")
    if cfg.render.format != "md":
        raise ConfigError("render.format must be 'md'")
    if not cfg.output.pattern:
        raise ConfigError("output.pattern is required")

    # Delimiters must stay single-line so bundles remain parseable.
    for key, value in (("header", cfg.render.file_block.header), ("footer", cfg.render.file_block.footer)):
        if "\n" in value or "\r" in value:
            raise ConfigError(f"render.file_block.{key} must not contain newlines")

    if not cfg.slices:
        raise ConfigError("at least one slice is required")
    if not cfg.profiles:
        raise ConfigError("at least one profile is required")

    for name in cfg.slices:
        if not name:
            raise ConfigError("slice name cannot be empty")

    for name, profile in cfg.profiles.items():
        if not name:
            raise ConfigError("profile name cannot be empty")
        if not profile.enable:
            raise ConfigError(f"profile {name!r} must enable at least one slice")
        for s in profile.enable:
            if s not in cfg.slices:
                raise ConfigError(f"profile {name!r} enables unknown slice {s!r}")
        for key, value in (("budgets.max_chars", profile.max_chars), ("render.tree_depth", profile.tree_depth)):
            if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value <= 0):
                raise ConfigError(f"profiles.{name}.{key} must be a positive integer")

    if cfg.default_profile and cfg.default_profile not in cfg.profiles:
        raise ConfigError(f"default_profile {cfg.default_profile!r} does not exist")


def effective_root(cfg: Config, override: Optional[str] = None, base: Optional[Path] = None) -> Path:
    """
    Resolves the root directory. A relative override is taken from the cwd;
    a relative config root from `base` (default: cwd).
    """
    if override:
        root = Path(override)
        if not root.is_absolute():
            root = Path.cwd() / root
    else:
        root = Path(cfg.root or ".")
        if not root.is_absolute():
            root = (base or Path.cwd()) / root
    root = root.resolve()
    if not root.exists():
        raise ConfigError(f"root does not exist: {root}")
    if not root.is_dir():
        raise ConfigError(f"root is not a directory: {root}")
    return root


def apply_profile_overrides(cfg: Config, profile: str) -> Config:
    """Returns a copy of cfg with the profile's budget/render overrides applied."""
    p = cfg.profiles.get(profile)
    if p is None:
        raise ConfigError(f"unknown profile {profile!r}")
    out = cfg
    if p.max_chars:
        out = replace(out, budgets=replace(out.budgets, max_chars=p.max_chars))
    if p.tree_depth:
        out = replace(out, render=replace(out.render, tree_depth=p.tree_depth))
    return out


def dump_config(cfg: Config) -> Dict[str, Any]:
    """Plain-dict form of the config, in the same shape load_config reads."""
    profiles: Dict[str, Any] = {}
    for name in sorted(cfg.profiles):
        p = cfg.profiles[name]
        body: Dict[str, Any] = {"enable": list(p.enable)}
        if p.max_chars:
            body["budgets"] = {"max_chars": p.max_chars}
        if p.tree_depth:
            body["render"] = {"tree_depth": p.tree_depth}
        profiles[name] = body

    return {
        "version": cfg.version,
        "root": cfg.root,
        "name": cfg.name,
        "default_profile": cfg.default_profile,
        "output": {
            "dir": cfg.output.dir,
            "pattern": cfg.output.pattern,
            "latest": cfg.output.latest,
            "stdout_default": cfg.output.stdout_default,
        },
        "render": {
            "format": cfg.render.format,
            "newline": cfg.render.newline,
            "code_fences": cfg.render.code_fences,
            "include_tree": cfg.render.include_tree,
            "tree_depth": cfg.render.tree_depth,
            "include_manifest": cfg.render.include_manifest,
            "manifest": {
                name: getattr(cfg.render.manifest, name)
                for name in ManifestConfig.__dataclass_fields__
            },
            "file_block": {
                "header": cfg.render.file_block.header,
                "footer": cfg.render.file_block.footer,
            },
        },
        "budgets": {
            "max_chars": cfg.budgets.max_chars,
            "per_file_max_lines": cfg.budgets.per_file_max_lines,
            "per_file_max_bytes": cfg.budgets.per_file_max_bytes,
            "drop_policy": cfg.budgets.drop_policy,
        },
        "ignore": {
            "use_gitignore": cfg.ignore.use_gitignore,
            "always": list(cfg.ignore.always),
            "binary_extensions": list(cfg.ignore.binary_extensions),
        },
        "sensitive": {"exclude_globs": list(cfg.sensitive_globs)},
        "slices": {
            name: {
                "include": list(s.include),
                "exclude": list(s.exclude),
                "priority": s.priority,
            }
            for name, s in sorted(cfg.slices.items())
        },
        "profiles": profiles,
    }


def write_config(path: Path, cfg: Config) -> None:
    text = yaml.safe_dump(dump_config(cfg), sort_keys=False, allow_unicode=True)
    try:
        atomic_write(Path(path), text)
    except OSError as e:
        raise ConfigError(f"write config: {e}") from e
