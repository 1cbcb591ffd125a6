# src/snip/core/apply.py
"""
Reverse conversion: pull headered code blocks out of free-form text (for
example a model's reply) and write them back under a root directory.

A block is a header line built from a template with one `{path}` token,
followed (possibly after some metadata lines) by a fenced code block.
"""
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional, Tuple

from snip.core.output import atomic_write
from snip.errors import ApplyError
from snip.utils.text import normalize_newlines

logger = logging.getLogger(__name__)

PATH_TOKEN = "{path}"


@dataclass(frozen=True)
class Block:
    path: str
    content: str


@dataclass(frozen=True)
class PlannedFile:
    rel_path: str
    abs_path: Path
    content: str
    exists: bool
    overwrite: bool


@dataclass(frozen=True)
class ApplyResult:
    files: Tuple[PlannedFile, ...]
    wrote: int
    dry_run: bool


class _Fence(NamedTuple):
    char: str
    count: int


class HeaderMatcher:
    def __init__(self, template: str):
        template = normalize_newlines(template).rstrip("\n")
        if not template.strip():
            raise ApplyError("file header template is required (must contain {path})")
        if template.count(PATH_TOKEN) != 1:
            raise ApplyError("file header template must contain exactly one {path} token")
        self.prefix, self.suffix = template.split(PATH_TOKEN)

    def match(self, line: str) -> Optional[str]:
        if len(line) < len(self.prefix) + len(self.suffix):
            return None
        if not line.startswith(self.prefix) or not line.endswith(self.suffix):
            return None
        return line[len(self.prefix):len(line) - len(self.suffix)]


def _fence_open(line: str) -> Optional[_Fence]:
    t = line.strip()
    if len(t) < 3 or t[0] not in "`~":
        return None
    n = len(t) - len(t.lstrip(t[0]))
    if n < 3:
        return None
    return _Fence(t[0], n)


def _fence_closes(line: str, fence: _Fence) -> bool:
    t = line.strip()
    return len(t) >= fence.count and t == fence.char * len(t)


def parse_blocks(text: str, header_template: str) -> List[Block]:
    """
    Extracts file blocks. Strict: duplicate paths, a header without a fence,
    and unclosed fences are errors. Headers inside unrelated fences are ignored.
    """
    matcher = HeaderMatcher(header_template)
    src = normalize_newlines(text)
    if src.endswith("\n"):
        src = src[:-1]
    lines = src.split("\n")

    blocks: List[Block] = []
    seen: Dict[str, int] = {}
    outer: Optional[_Fence] = None
    i = 0
    while i < len(lines):
        line, line_no = lines[i], i + 1
        i += 1

        if outer is not None:
            if _fence_closes(line, outer):
                outer = None
            continue
        fence = _fence_open(line)
        if fence is not None:
            outer = fence
            continue

        path = matcher.match(line)
        if path is None:
            continue
        path = path.strip()
        if not path:
            raise ApplyError(f"empty path in header at line {line_no}")
        if path in seen:
            raise ApplyError(
                f"ambiguous duplicate file path {path!r} (headers at lines {seen[path]} and {line_no})")
        seen[path] = line_no

        # Skip metadata lines up to the opening fence.
        open_fence = None
        while i < len(lines):
            candidate, cand_no = lines[i], i + 1
            i += 1
            if matcher.match(candidate) is not None:
                raise ApplyError(
                    f"header at line {line_no} for {path!r} has no code fence "
                    f"before next header at line {cand_no}")
            open_fence = _fence_open(candidate)
            if open_fence is not None:
                open_line = cand_no
                break
        if open_fence is None:
            raise ApplyError(f"header at line {line_no} for {path!r} has no code fence")

        body: List[str] = []
        closed = False
        while i < len(lines):
            candidate = lines[i]
            i += 1
            if _fence_closes(candidate, open_fence):
                closed = True
                break
            body.append(candidate)
        if not closed:
            raise ApplyError(f"unclosed code fence for {path!r} (header line {line_no}, fence line {open_line})")

        blocks.append(Block(path=path, content="".join(l + "\n" for l in body)))

    if not blocks:
        raise ApplyError("no file blocks detected")
    return blocks


def resolve_target(root: Path, declared: str) -> Tuple[str, Path]:
    """Validates a declared path and maps it under root. Rejects escapes."""
    p = declared.strip()
    if not p:
        raise ApplyError("empty path")
    if "\0" in p:
        raise ApplyError(f"path contains NUL: {p!r}")
    if os.path.isabs(p) or p.startswith(("/", "\\")):
        raise ApplyError(f"absolute paths are not allowed: {p!r}")
    clean = os.path.normpath(p.replace("\\", "/"))
    if clean in (".", ""):
        raise ApplyError(f"invalid target path {p!r}")
    if clean == ".." or clean.startswith(".." + os.sep) or clean.startswith("../"):
        raise ApplyError(f"path escapes root: {p!r}")
    abs_path = Path(os.path.normpath(root / clean))
    try:
        rel = abs_path.relative_to(root)
    except ValueError as e:
        raise ApplyError(f"path escapes root: {p!r}") from e
    return rel.as_posix(), abs_path


def apply_blocks(blocks: List[Block], root: Path, write: bool = False, force: bool = False) -> ApplyResult:
    """Plans writes for every block; only touches the disk when `write` is set."""
    if not blocks:
        raise ApplyError("no file blocks detected")
    root = Path(root).resolve()
    if not root.is_dir():
        raise ApplyError(f"root is not a directory: {root}")

    planned: List[PlannedFile] = []
    seen: Dict[str, int] = {}
    for idx, block in enumerate(blocks, start=1):
        rel, abs_path = resolve_target(root, block.path)
        if rel in seen:
            raise ApplyError(f"ambiguous duplicate target path {rel!r} (entries {seen[rel]} and {idx})")
        seen[rel] = idx

        exists = abs_path.exists()
        if exists and abs_path.is_dir():
            raise ApplyError(f"target {rel!r} is a directory")
        if exists and not force:
            raise ApplyError(f"target exists (use --force): {rel!r}")
        planned.append(PlannedFile(rel, abs_path, block.content, exists, exists and force))

    wrote = 0
    if write:
        for pf in planned:
            try:
                atomic_write(pf.abs_path, pf.content)
            except OSError as e:
                raise ApplyError(f"write {pf.rel_path}: {e}", ApplyError.IO) from e
            logger.debug("wrote %s", pf.rel_path)
            wrote += 1
    return ApplyResult(files=tuple(planned), wrote=wrote, dry_run=not write)


def read_input(path: str) -> str:
    if not path:
        raise ApplyError("input file is required")
    try:
        if path == "-":
            return sys.stdin.read()
        with open(path, "r", encoding="utf-8") as f:
            return f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise ApplyError(f"read input file {path}: {e}", ApplyError.IO) from e
