# src/snip/core/ignore.py
import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import pathspec
from pathspec.pattern import RegexPattern

logger = logging.getLogger(__name__)


def _split_segments(pattern: str) -> List[str]:
    """Splits a glob on '/' outside of braces and escapes."""
    segs, cur = [], []
    depth = 0
    i = 0
    while i < len(pattern):
        c = pattern[i]
        if c == "\\" and i + 1 < len(pattern):
            cur.append(pattern[i:i + 2])
            i += 2
            continue
        if c == "{":
            depth += 1
        elif c == "}" and depth:
            depth -= 1
        elif c == "/" and not depth:
            segs.append("".join(cur))
            cur = []
            i += 1
            continue
        cur.append(c)
        i += 1
    segs.append("".join(cur))
    return segs


def _translate_class(seg: str, i: int) -> Tuple[str, int]:
    """Translates the `[...]` class starting at seg[i]. Returns (regex, next index)."""
    j = i + 1
    negate = j < len(seg) and seg[j] in "!^"
    if negate:
        j += 1
    body = []
    first = True
    while True:
        if j >= len(seg):
            raise ValueError(f"unterminated character class in {seg!r}")
        ch = seg[j]
        if ch == "]" and not first:
            break
        if ch == "\\":
            j += 1
            if j >= len(seg):
                raise ValueError(f"dangling escape in {seg!r}")
            body.append(re.escape(seg[j]))
        elif ch in "[^":
            body.append("\\" + ch)
        else:
            body.append(ch)
        first = False
        j += 1
    cls = "".join(body)
    return ("[^/" + cls + "]" if negate else "[" + cls + "]"), j + 1


def _translate_segment(seg: str) -> str:
    out = []
    depth = 0
    i = 0
    while i < len(seg):
        c = seg[i]
        if c == "*":
            while i + 1 < len(seg) and seg[i + 1] == "*":
                i += 1
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "[":
            regex, i = _translate_class(seg, i)
            out.append(regex)
            continue
        elif c == "{":
            depth += 1
            out.append("(?:")
        elif c == "," and depth:
            out.append("|")
        elif c == "}" and depth:
            depth -= 1
            out.append(")")
        elif c == "\\":
            i += 1
            if i >= len(seg):
                raise ValueError(f"dangling escape in {seg!r}")
            out.append(re.escape(seg[i]))
        else:
            out.append(re.escape(c))
        i += 1
    if depth:
        raise ValueError(f"unterminated brace in {seg!r}")
    return "".join(out)


class GlobPattern(RegexPattern):
    """
    A root-anchored glob that must match the whole relative path.

    `*`, `?` and `[...]` stay within one segment, a `**` segment spans zero
    or more segments, and `{a,b}` picks one alternative. Unlike a gitignore
    line, a pattern that names a directory does not cover its contents.
    """

    __slots__ = ()

    @classmethod
    def pattern_to_regex(cls, pattern: str) -> Tuple[str, bool]:
        segs = _split_segments(pattern)
        regex = ""
        for idx, seg in enumerate(segs):
            last = idx == len(segs) - 1
            if seg == "**":
                if not last:
                    regex += "(?:.*/)?"
                elif idx == 0:
                    regex += ".*"
                else:
                    # `a/**` also matches `a` itself.
                    regex = regex[:-1] + "(?:/.*)?"
            else:
                regex += _translate_segment(seg) + ("" if last else "/")
        return f"^{regex}$", True


@lru_cache(maxsize=4096)
def compile_glob(pattern: str) -> Optional[pathspec.PathSpec]:
    """
    Compiles one config glob into a PathSpec anchored at the root.
    Invalid patterns compile to None and never match.
    """
    pattern = pattern.strip()
    if not pattern:
        return None
    try:
        return pathspec.PathSpec.from_lines(GlobPattern, [pattern.lstrip("/")])
    except (ValueError, re.error) as e:
        logger.debug("ignoring invalid glob %r: %s", pattern, e)
        return None


def glob_match(pattern: str, rel_path: str) -> bool:
    spec = compile_glob(pattern)
    return spec is not None and spec.match_file(rel_path)


def first_match(rel_path: str, patterns: Iterable[str]) -> Optional[str]:
    """Returns the first pattern matching rel_path, or None."""
    for pattern in patterns:
        if glob_match(pattern, rel_path):
            return pattern
    return None


def is_hidden_path(rel_path: str) -> bool:
    """True if any segment of a relative path starts with '.'."""
    return names_hidden_segment(rel_path)


def names_hidden_segment(pattern: str) -> bool:
    """
    True if a path or glob spells out a dot-segment, e.g. `.github/**`,
    `**/.env*`. The `.` and `..` segments do not count.
    """
    for seg in pattern.replace("\\", "/").split("/"):
        if seg.startswith(".") and seg not in (".", ".."):
            return True
    return False


def _rebase_gitignore_line(line: str, base: str) -> Optional[str]:
    """Rewrites a .gitignore line from directory `base` to be root-relative."""
    line = line.rstrip("\n").rstrip("\r")
    if not line.strip() or line.startswith("#"):
        return None
    if not base:
        return line

    negate = line.startswith("!")
    body = line[1:] if negate else line
    # A slash anywhere but the end anchors the pattern to its own directory.
    if "/" in body.rstrip("/"):
        rebased = f"/{base}/{body.lstrip('/')}"
    else:
        rebased = f"/{base}/**/{body}"
    return ("!" if negate else "") + rebased


class GitignoreRules:
    """
    Accumulates .gitignore files found while walking top-down and matches
    root-relative paths against all rules loaded so far.
    """

    def __init__(self):
        self._lines: List[str] = []
        self._spec: Optional[pathspec.GitIgnoreSpec] = None

    def __bool__(self) -> bool:
        return bool(self._lines)

    def load(self, gitignore_file: Path, base: str = "") -> None:
        try:
            with open(gitignore_file, "r", encoding="utf-8", errors="replace") as f:
                raw = f.readlines()
        except OSError as e:
            logger.warning("could not read %s: %s", gitignore_file, e)
            return
        self.extend(raw, base)

    def extend(self, lines: Iterable[str], base: str = "") -> None:
        for line in lines:
            rebased = _rebase_gitignore_line(line, base)
            if rebased is not None:
                self._lines.append(rebased)
        self._spec = None

    def _compiled(self) -> Optional[pathspec.GitIgnoreSpec]:
        if self._spec is None and self._lines:
            try:
                self._spec = pathspec.GitIgnoreSpec.from_lines(self._lines)
            except (ValueError, TypeError) as e:
                logger.warning("error parsing ignore rules: %s", e)
                self._lines = [l for l in self._lines if _valid_gitignore_line(l)]
                self._spec = pathspec.GitIgnoreSpec.from_lines(self._lines)
        return self._spec

    def matches(self, rel_path: str, is_directory: bool = False) -> bool:
        spec = self._compiled()
        if spec is None:
            return False
        return spec.match_file(rel_path + "/" if is_directory else rel_path)


def _valid_gitignore_line(line: str) -> bool:
    try:
        pathspec.GitIgnoreSpec.from_lines([line])
    except (ValueError, TypeError):
        return False
    return True


def normalize_extensions(extensions: Iterable[str]) -> Tuple[str, ...]:
    """Lowercases extensions and makes sure each starts with a dot."""
    out = []
    for ext in extensions:
        ext = ext.strip().lower()
        if not ext:
            continue
        out.append(ext if ext.startswith(".") else "." + ext)
    return tuple(out)
