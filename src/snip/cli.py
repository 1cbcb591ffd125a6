# src/snip/cli.py
import argparse
import logging
import re
import sys
from pathlib import Path
from typing import List, Optional

from snip import app
from snip.config import SNIP_VERSION, find_config_path, load_config
from snip.core.apply import apply_blocks, parse_blocks, read_input
from snip.core.init import init_config
from snip.errors import EXIT_CANCELLED, EXIT_OK, EXIT_USAGE, ApplyError, PartialOutput, SnipError

logger = logging.getLogger(__name__)

COMMANDS = ("run", "ls", "explain", "doctor", "init", "apply", "version")
MODIFIER_COMMANDS = ("run", "ls", "explain", "doctor")

# argparse would read "-docs" as an unknown option, so dash modifiers are escaped before parsing.
_MODIFIER_ESCAPE = "__snip_modifier__:"
_DASH_MODIFIER = re.compile(r"^-[A-Za-z0-9][A-Za-z0-9_-]*$")
_SHORT_FLAGS = {"-h", "-o", "-q", "-v"}
_VALUE_FLAGS = {"-o", "--out", "--max-chars", "--tree-depth", "--config", "--root", "--profile", "--header"}
_GLOBAL_VALUE_FLAGS = {"--config", "--root"}
_GLOBAL_BOOL_FLAGS = {"-v", "--verbose"}


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s", stream=sys.stderr)


def _global_options() -> argparse.ArgumentParser:
    # SUPPRESS keeps a subcommand from resetting a value given before it.
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", default=argparse.SUPPRESS, help="Config file (default: $SNIP_CONFIG or ./.snip.yaml)")
    common.add_argument("--root", default=argparse.SUPPRESS, help="Override the config root directory")
    common.add_argument("-v", "--verbose", action="store_true", default=argparse.SUPPRESS, help="Debug logging")
    return common


def _selection_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--include-hidden", action="store_true", help="Allow hidden files matched by any pattern")
    parser.add_argument("modifiers", nargs="*", default=[], help="+slice / -slice for this run only")


def create_arg_parser() -> argparse.ArgumentParser:
    common = _global_options()
    parser = argparse.ArgumentParser(
        prog="snip",
        description="Bundle the relevant slices of a repository into one LLM-friendly markdown file.",
        parents=[common],
    )
    sub = parser.add_subparsers(dest="command")

    run_p = sub.add_parser("run", parents=[common], help="Write a bundle (the default command)")
    run_p.add_argument("profile", nargs="?", default=None, help="Profile name (default: config default_profile)")
    run_p.add_argument("-o", "--out", default=None, help="Output path, or '-' for stdout")
    run_p.add_argument("--stdout", action="store_true", help="Write the bundle to stdout")
    run_p.add_argument("--max-chars", type=int, default=None, help="Override the character budget")
    run_p.add_argument("--no-tree", action="store_true", help="Omit the directory tree")
    run_p.add_argument("--no-manifest", action="store_true", help="Omit the manifests")
    run_p.add_argument("--tree-depth", type=int, default=None, help="Override the tree depth")
    run_p.add_argument("-q", "--quiet", action="store_true", help="Only report errors")
    _selection_options(run_p)

    ls_p = sub.add_parser("ls", parents=[common], help="List what a run would include")
    ls_p.add_argument("profile", nargs="?", default=None)
    ls_p.add_argument("--max-chars", type=int, default=None)
    _selection_options(ls_p)

    ex_p = sub.add_parser("explain", parents=[common], help="Explain why a path is or is not included")
    ex_p.add_argument("path")
    ex_p.add_argument("--profile", default=None)
    _selection_options(ex_p)

    doc_p = sub.add_parser("doctor", parents=[common], help="Show the effective config and environment diagnostics")
    doc_p.add_argument("--profile", default=None)
    _selection_options(doc_p)

    init_p = sub.add_parser("init", parents=[common], help="Write a starter .snip.yaml")
    init_p.add_argument("--force", action="store_true", help="Overwrite an existing config")
    init_p.add_argument("--interactive", action="store_true", help="Ask before honoring .gitignore")

    apply_p = sub.add_parser("apply", parents=[common], help="Write file blocks from text back to disk")
    apply_p.add_argument("input", help="Input file, or '-' for stdin")
    apply_p.add_argument("--header", default=None, help="Block header template containing {path}")
    apply_p.add_argument("--write", action="store_true", help="Write files (default is a dry run)")
    apply_p.add_argument("--force", action="store_true", help="Overwrite existing files")

    sub.add_parser("version", parents=[common], help="Print the version")
    return parser


def prepare_argv(argv: List[str]) -> List[str]:
    """Inserts the default `run` command and escapes dash modifiers."""
    argv = list(argv)
    i = 0
    while i < len(argv):
        tok = argv[i]
        if tok in ("-h", "--help"):
            return argv
        if tok in _GLOBAL_VALUE_FLAGS:
            i += 2
        elif tok in _GLOBAL_BOOL_FLAGS or tok.split("=", 1)[0] in _GLOBAL_VALUE_FLAGS:
            i += 1
        else:
            break
    if i >= len(argv) or argv[i] not in COMMANDS:
        argv.insert(i, "run")
    command = argv[i]
    if command not in MODIFIER_COMMANDS:
        return argv

    out = argv[:i + 1]
    rest = argv[i + 1:]
    j = 0
    while j < len(rest):
        tok = rest[j]
        if tok == "--":
            out += rest[j:]
            break
        if tok in _VALUE_FLAGS:
            out += rest[j:j + 2]
            j += 2
            continue
        if _DASH_MODIFIER.match(tok) and tok not in _SHORT_FLAGS:
            tok = _MODIFIER_ESCAPE + tok[1:]
        out.append(tok)
        j += 1
    return out


def _unescape(tok: str) -> str:
    if tok.startswith(_MODIFIER_ESCAPE):
        return "-" + tok[len(_MODIFIER_ESCAPE):]
    return tok


def _is_modifier(tok: str) -> bool:
    return tok.startswith((_MODIFIER_ESCAPE, "+"))


def _split_profile(profile: Optional[str], modifiers: List[str]):
    mods = [_unescape(m) for m in modifiers]
    if profile is not None:
        profile = _unescape(profile)
        if profile.startswith(("+", "-")):
            # Only modifiers were given; the default profile applies.
            mods.insert(0, profile)
            profile = None
    return profile, mods


def _run_options(args) -> app.RunOptions:
    profile, mods = _split_profile(getattr(args, "profile", None), args.modifiers)
    out = getattr(args, "out", None)
    if getattr(args, "stdout", False):
        if out and out != "-":
            raise SnipError("--stdout and --out are mutually exclusive", EXIT_USAGE)
        out = "-"
    return app.RunOptions(
        config_path=getattr(args, "config", None),
        root_override=getattr(args, "root", None),
        profile=profile,
        modifiers=mods,
        output=out,
        max_chars=getattr(args, "max_chars", None),
        no_tree=getattr(args, "no_tree", False),
        no_manifest=getattr(args, "no_manifest", False),
        tree_depth=getattr(args, "tree_depth", None),
        include_hidden=args.include_hidden,
        verbose=getattr(args, "verbose", False),
    )


def _cmd_run(args) -> int:
    opts = _run_options(args)
    for name, value in (("--max-chars", opts.max_chars), ("--tree-depth", opts.tree_depth)):
        if value is not None and value <= 0:
            raise SnipError(f"{name} must be > 0", EXIT_USAGE)
    try:
        result = app.run(opts)
    except PartialOutput as e:
        _report_written(e.result, args.quiet)
        return e.exit_code
    _report_written(result, args.quiet)
    return EXIT_OK


def _report_written(result, quiet: bool) -> None:
    if result.output_path != "-" and not quiet:
        print(result.output_path)


def _cmd_ls(args) -> int:
    opts = _run_options(args)
    try:
        result = app.list_plan(opts)
    except PartialOutput as e:
        print(e.result.rendered, end="")
        return e.exit_code
    print(result.rendered, end="")
    return EXIT_OK


def _report_options(args) -> app.RunOptions:
    profile, mods = _split_profile(args.profile, args.modifiers)
    return app.RunOptions(
        config_path=getattr(args, "config", None),
        root_override=getattr(args, "root", None),
        profile=profile,
        modifiers=mods,
        include_hidden=args.include_hidden,
    )


def _cmd_explain(args) -> int:
    print(app.explain(_report_options(args), args.path), end="")
    return EXIT_OK


def _cmd_doctor(args) -> int:
    print(app.doctor(_report_options(args)), end="")
    return EXIT_OK


def _cmd_init(args) -> int:
    root = Path(getattr(args, "root", None) or Path.cwd())
    path = init_config(root, force=args.force, interactive=args.interactive)
    print(path)
    return EXIT_OK


def _header_template(args) -> str:
    if args.header:
        return args.header
    config_path = find_config_path(getattr(args, "config", None))
    if config_path.exists():
        header = load_config(config_path).render.file_block.header
        if header:
            return header
    raise ApplyError("file header template is required: pass --header or set render.file_block.header")


def _cmd_apply(args) -> int:
    root = Path(getattr(args, "root", None) or Path.cwd())
    blocks = parse_blocks(read_input(args.input), _header_template(args))
    result = apply_blocks(blocks, root, write=args.write, force=args.force)
    for pf in result.files:
        action = "overwrite" if pf.overwrite else "create"
        if result.dry_run:
            action = "would " + action
        print(f"{action}: {pf.rel_path}")
    if result.dry_run:
        print(f"Dry run: {len(result.files)} file(s). Use --write to apply.")
    else:
        print(f"Wrote {result.wrote} file(s).")
    return EXIT_OK


HANDLERS = {
    "run": _cmd_run,
    "ls": _cmd_ls,
    "explain": _cmd_explain,
    "doctor": _cmd_doctor,
    "init": _cmd_init,
    "apply": _cmd_apply,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = create_arg_parser()
    args, extra = parser.parse_known_args(prepare_argv(sys.argv[1:] if argv is None else argv))
    if extra:
        # Modifiers given after an option land here rather than in the positional list.
        if args.command not in MODIFIER_COMMANDS or not all(_is_modifier(t) for t in extra):
            parser.error(f"unrecognized arguments: {' '.join(_unescape(t) for t in extra)}")
        args.modifiers = list(args.modifiers) + extra
    setup_logging(getattr(args, "verbose", False), getattr(args, "quiet", False))

    if args.command == "version":
        print(f"snip {SNIP_VERSION}")
        return EXIT_OK

    try:
        return HANDLERS[args.command](args)
    except KeyboardInterrupt:
        print("\nCancelled.", file=sys.stderr)
        return EXIT_CANCELLED
    except SnipError as e:
        logger.error("%s", e)
        return e.exit_code


if __name__ == "__main__":
    sys.exit(main())
