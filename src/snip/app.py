# src/snip/app.py
import logging
import sys
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from snip.config import (
    SNIP_VERSION,
    Config,
    apply_profile_overrides,
    effective_root,
    find_config_path,
    load_config,
)
from snip.core.budget import BudgetEnforcer, Limits, build_plan
from snip.core.ignore import is_hidden_path
from snip.core.output import (
    DEFAULT_GITSHA,
    FileCounter,
    short_sha,
    write_default_output,
    write_explicit_output,
)
from snip.core.render import BundleInfo, MarkdownRenderer
from snip.core.scanner import ProjectScanner, ScanRules
from snip.core.selector import (
    enabled_slices,
    explain_slice_match,
    match_slice,
    ordered_slices,
    parse_modifiers,
    primary_slice,
    resolve_membership,
)
from snip.errors import ConfigError, OutputError, PartialOutput
from snip.models import Plan, Reason
from snip.utils.tokenizer import Tokenizer

logger = logging.getLogger(__name__)

_FILE_DROP_WARNINGS = {
    Reason.UNREADABLE: "unreadable file(s) excluded",
    Reason.INVALID_ENCODING: "invalid UTF-8 file(s) excluded",
    Reason.SENSITIVE_RULE: "file(s) excluded by sensitive rules",
    Reason.IGNORE_RULE: "file(s) excluded by ignore rules",
    Reason.VCS_IGNORE_RULE: "file(s) excluded by .gitignore",
    Reason.BINARY: "binary file(s) excluded",
    Reason.OUTSIDE_ROOT: "file(s) outside root excluded",
}

DOCTOR_TOP_REASONS = 8


@dataclass
class RunOptions:
    config_path: Optional[str] = None
    root_override: Optional[str] = None
    profile: Optional[str] = None
    modifiers: Sequence[str] = ()
    output: Optional[str] = None  # "-" for stdout
    max_chars: Optional[int] = None
    no_tree: bool = False
    no_manifest: bool = False
    tree_depth: Optional[int] = None
    include_hidden: bool = False
    verbose: bool = False
    now: Callable[[], datetime] = datetime.now
    should_stop: Optional[Callable[[], bool]] = None
    counter: Optional[FileCounter] = None
    stdout: object = field(default=None, repr=False)


@dataclass(frozen=True)
class RunResult:
    output_path: str
    partial: bool
    hard_cut: bool
    plan: Optional[Plan] = None
    rendered: str = ""


@dataclass
class _Context:
    config: Config
    config_path: Path
    root: Path
    profile: str
    enabled: List[str]
    enabled_ordered: List[str]
    limits: Limits


def _prepare(opts: RunOptions) -> _Context:
    """Everything that can fail for configuration reasons happens here, before any file I/O."""
    config_path = find_config_path(opts.config_path)
    cfg = load_config(config_path)
    root = effective_root(cfg, opts.root_override, base=config_path.resolve().parent)

    profile = opts.profile or cfg.default_profile
    if not profile:
        raise ConfigError("no profile given and no default_profile configured")
    cfg = apply_profile_overrides(cfg, profile)

    render = cfg.render
    if opts.no_tree:
        render = replace(render, include_tree=False)
    if opts.no_manifest:
        render = replace(render, include_manifest=False)
    if opts.tree_depth:
        render = replace(render, tree_depth=opts.tree_depth)
    cfg = replace(cfg, render=render)

    mods = parse_modifiers(opts.modifiers)
    enabled = enabled_slices(cfg, profile, mods)
    limits = Limits(
        max_chars=opts.max_chars or cfg.budgets.max_chars,
        per_file_max_lines=cfg.budgets.per_file_max_lines,
        per_file_max_bytes=cfg.budgets.per_file_max_bytes,
    )
    if limits.max_chars <= 0:
        raise ConfigError("max_chars must be > 0")
    return _Context(cfg, config_path, root, profile, enabled, ordered_slices(enabled, cfg.slices), limits)


def _scanner(ctx: _Context, should_stop=None) -> ProjectScanner:
    rules = ScanRules(
        always_ignore=ctx.config.ignore.always,
        sensitive=ctx.config.sensitive_globs,
        binary_extensions=ctx.config.ignore.binary_extensions,
        use_gitignore=ctx.config.ignore.use_gitignore,
    )
    return ProjectScanner(ctx.root, rules, should_stop=should_stop)


def _finalize(ctx: _Context, opts: RunOptions):
    candidates = _scanner(ctx, opts.should_stop).scan()
    logger.debug("discovered %d files", len(candidates))

    selection = resolve_membership(candidates, ctx.config.slices, ctx.enabled, opts.include_hidden)
    logger.debug("selected %d, dropped %d", len(selection.included), len(selection.dropped))

    plan = build_plan(ctx.profile, ctx.enabled_ordered, selection, ctx.limits, opts.should_stop)

    info = BundleInfo(
        repo=ctx.root.name,
        root=opts.root_override or ctx.config.root or ".",
        profile=ctx.profile,
        enabled=tuple(ctx.enabled_ordered),
        git_sha=short_sha(ctx.root) or DEFAULT_GITSHA,
        version=SNIP_VERSION,
    )
    renderer = MarkdownRenderer(ctx.config.render)
    enforcer = BudgetEnforcer(
        ctx.limits,
        ctx.config.slice_priorities(ctx.enabled),
        lambda p: renderer.render(info, p),
        should_stop=opts.should_stop,
    )
    final, rendered = enforcer.enforce(plan)
    return final, rendered, info


def warn_partial(plan: Plan) -> None:
    """One warning per dropped slice and one per class of dropped file."""
    for s in plan.dropped_slices:
        logger.warning("slice dropped due to budget: %s", s)
    counts = Counter(d.reason for d in plan.dropped)
    for reason, message in _FILE_DROP_WARNINGS.items():
        if counts.get(reason):
            logger.warning("%d %s", counts[reason], message)
    if plan.hard_cut:
        logger.warning("bundle text was hard-cut to fit the character budget")


def run(opts: RunOptions) -> RunResult:
    """Builds a bundle and writes it. Raises PartialOutput after writing if anything was dropped."""
    ctx = _prepare(opts)
    plan, rendered, info = _finalize(ctx, opts)
    warn_partial(plan)

    to_stdout = opts.output == "-" or (not opts.output and ctx.config.output.stdout_default)
    try:
        if to_stdout:
            stream = opts.stdout or sys.stdout
            stream.write(rendered)
            stream.flush()
            out_path = "-"
        elif opts.output:
            out_path = str(write_explicit_output(opts.output, rendered))
        else:
            out_path = str(write_default_output(
                root=ctx.root,
                out_dir=ctx.config.output.dir,
                pattern=ctx.config.output.pattern,
                latest=ctx.config.output.latest,
                profile=ctx.profile,
                gitsha=info.git_sha,
                now=opts.now(),
                rendered=rendered,
                counter=opts.counter,
            ))
    except (OSError, ValueError) as e:
        raise OutputError(f"write bundle: {e}") from e

    result = RunResult(out_path, plan.partial, plan.hard_cut, plan, rendered)
    if plan.partial:
        err = PartialOutput("partial output")
        err.result = result
        raise err
    return result


def list_plan(opts: RunOptions) -> RunResult:
    """Dry run: the same pipeline as `run`, returning a listing instead of writing."""
    ctx = _prepare(opts)
    plan, _, _ = _finalize(ctx, opts)
    logger.debug("ls finalized: included=%d dropped=%d partial=%s",
                 len(plan.included), len(plan.dropped), plan.partial)

    lines = [f"Enabled slices: [{', '.join(ctx.enabled_ordered)}]", "Included files:"]
    total_tokens = 0
    for i, f in enumerate(plan.included, start=1):
        tokens = Tokenizer.count(f.content)
        total_tokens += tokens
        lines.append(
            f"  {i:>3}  {f.rel_path}  slices=[{','.join(f.slices)}] primary={f.primary_slice} "
            f"truncated={str(f.truncated).lower()} tokens~{tokens}"
        )
    lines.append(f"Total files: {len(plan.included)} | Tokens: ~{total_tokens}")

    for s in plan.dropped_slices:
        lines.append(f"Dropped slice due to budget: {s}")

    if opts.verbose:
        lines.append("Dropped:")
        for d in plan.dropped:
            note = f"  - {d.rel_path} reason={d.reason.value}"
            if d.detail:
                note += f" detail={d.detail}"
            if d.primary_slice:
                note += f" slice={d.primary_slice}"
            lines.append(note)
    else:
        budget_drops = sum(1 for d in plan.dropped if d.reason is Reason.BUDGET_EXCEEDED)
        if budget_drops:
            lines.append(f"Dropped files due to budget: {budget_drops} (use --verbose for details)")

    listing = "\n".join(lines) + "\n"
    result = RunResult("", plan.partial, plan.hard_cut, plan, listing)
    if plan.partial:
        err = PartialOutput("partial output")
        err.result = result
        raise err
    return result


def explain(opts: RunOptions, target: str) -> str:
    """Explains why one path is included or excluded, and which rules matched."""
    ctx = _prepare(opts)
    rel = Path(target)
    if rel.is_absolute():
        try:
            rel = rel.resolve().relative_to(ctx.root)
        except ValueError as e:
            raise ConfigError(f"{target} is outside root {ctx.root}") from e
    rel_path = rel.as_posix()

    candidates = {c.rel_path: c for c in _scanner(ctx, opts.should_stop).scan()}
    candidate = candidates.get(rel_path)
    hidden = is_hidden_path(rel_path)

    lines = [
        f"path: {rel_path}",
        f"profile: {ctx.profile}",
        f"enabled_slices: [{', '.join(ctx.enabled_ordered)}]",
        f"hidden: {str(hidden).lower()}",
    ]
    if candidate is None:
        lines.append("discovered: false (missing, a symlink, or inside a pruned directory)")
    elif candidate.excluded:
        lines.append(f"discovered: true excluded: {candidate.reason.value} ({candidate.detail})")
    else:
        lines.append("discovered: true excluded: false")

    lines.append("slices:")
    members = []
    for name in ctx.enabled_ordered:
        sl = ctx.config.slices[name]
        detail = explain_slice_match(rel_path, sl)
        member = match_slice(rel_path, hidden, sl, opts.include_hidden).member
        if member:
            members.append(name)
        note = f"  - {name} (priority {sl.priority}): member={str(member).lower()}"
        if detail.include_pattern:
            note += f" include={detail.include_pattern}"
            if hidden and not member and not detail.explicit_hidden and not opts.include_hidden:
                note += " (hidden path needs an explicit dot pattern or --include-hidden)"
        if detail.exclude_pattern:
            note += f" exclude={detail.exclude_pattern}"
        lines.append(note)

    if members:
        primary, _ = primary_slice(members, ctx.config.slice_priorities(members))
        lines.append(f"primary_slice: {primary}")
        if candidate is not None and candidate.excluded:
            lines.append(f"result: dropped ({candidate.reason.value})")
        elif candidate is None:
            lines.append("result: not selected")
        else:
            lines.append("result: selected")
    else:
        lines.append("result: not selected (no enabled slice matches)")
    return "\n".join(lines) + "\n"


def doctor(opts: RunOptions) -> str:
    """Reports the effective configuration, git availability and the most common exclusion reasons."""
    ctx = _prepare(opts)
    sha = short_sha(ctx.root)

    candidates = _scanner(ctx, opts.should_stop).scan()
    selection = resolve_membership(candidates, ctx.config.slices, ctx.enabled, opts.include_hidden)
    counts = Counter(d.reason.value for d in selection.dropped)
    top = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[:DOCTOR_TOP_REASONS]

    lines = [
        f"config_path: {ctx.config_path}",
        f"root: {ctx.root}",
        f"profile: {ctx.profile}",
        f"enabled_slices: [{', '.join(ctx.enabled_ordered)}]",
        f"budgets: max_chars={ctx.limits.max_chars} per_file_max_lines={ctx.limits.per_file_max_lines} "
        f"per_file_max_bytes={ctx.limits.per_file_max_bytes}",
        f"git: available={str(sha is not None).lower()} sha={sha or '(unavailable)'}",
        f"discovery: use_gitignore={str(ctx.config.ignore.use_gitignore).lower()} "
        f"include_hidden={str(opts.include_hidden).lower()}",
        "top_exclusion_reasons:",
    ]
    if not top:
        lines.append("  (none)")
    for reason, n in top:
        lines.append(f"  - {reason}: {n}")
    return "\n".join(lines) + "\n"
