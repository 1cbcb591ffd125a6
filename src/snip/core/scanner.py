# src/snip/core/scanner.py
import logging
import os
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from snip.core.ignore import (
    GitignoreRules,
    first_match,
    is_hidden_path,
    normalize_extensions,
)
from snip.errors import Cancelled, TraversalError
from snip.models import PathCandidate, Reason
from snip.utils.text import SNIFF_BYTES, sniff_binary

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanRules:
    """Ordered rule sets the classifier applies to every file."""
    always_ignore: Tuple[str, ...] = ()
    sensitive: Tuple[str, ...] = ()
    binary_extensions: Tuple[str, ...] = ()
    use_gitignore: bool = True


class ProjectScanner:
    """
    Walks a directory tree and labels every regular file as an included
    candidate or excluded with a reason. Symlinks are neither followed nor
    reported, and directories matching an ignore rule are pruned.
    """

    def __init__(self, root_dir: Path, rules: ScanRules, should_stop: Optional[Callable[[], bool]] = None):
        self.root_dir = Path(root_dir).resolve()
        self.rules = rules
        self.binary_extensions = frozenset(normalize_extensions(rules.binary_extensions))
        self.gitignore = GitignoreRules()
        self.should_stop = should_stop

    def _sniff(self, path: Path) -> bool:
        """Reads the first 8 KiB and reports whether the file looks binary."""
        with path.open("rb") as f:
            return sniff_binary(f.read(SNIFF_BYTES))

    def _on_walk_error(self, err: OSError) -> None:
        failed = Path(err.filename) if err.filename else None
        if failed is None or failed == self.root_dir:
            raise TraversalError(f"walk {self.root_dir}: {err.strerror or err}") from err
        logger.warning("skipping unreadable directory %s: %s", failed, err.strerror or err)

    def _prune(self, rel_dir: str) -> bool:
        if first_match(rel_dir + "/", self.rules.always_ignore) is not None:
            return True
        if self.rules.use_gitignore and self.gitignore.matches(rel_dir, is_directory=True):
            return True
        return False

    def scan(self) -> List[PathCandidate]:
        """Returns every regular file under the root, sorted by relative path."""
        try:
            if not self.root_dir.is_dir():
                raise TraversalError(f"root is not a directory: {self.root_dir}")
        except OSError as e:
            raise TraversalError(f"stat root: {e}") from e

        out: List[PathCandidate] = []
        for root, dirs, files in os.walk(self.root_dir, onerror=self._on_walk_error):
            if self.should_stop is not None and self.should_stop():
                raise Cancelled("scan cancelled")
            root_path = Path(root)
            rel_root = root_path.relative_to(self.root_dir).as_posix()
            rel_root = "" if rel_root == "." else rel_root

            if self.rules.use_gitignore and ".gitignore" in files:
                self.gitignore.load(root_path / ".gitignore", rel_root)

            # Prune in place so os.walk never descends into ignored or linked dirs.
            kept_dirs = []
            for d in sorted(dirs):
                dir_abs = root_path / d
                if dir_abs.is_symlink():
                    continue
                dir_rel = f"{rel_root}/{d}" if rel_root else d
                if self._prune(dir_rel):
                    logger.debug("pruning directory %s", dir_rel)
                    continue
                kept_dirs.append(d)
            dirs[:] = kept_dirs

            for f in sorted(files):
                candidate = self._classify(root_path / f)
                if candidate is not None:
                    out.append(candidate)

        out.sort(key=lambda c: c.rel_path.encode("utf-8", "surrogateescape"))
        return out

    def _classify(self, file_abs: Path) -> Optional[PathCandidate]:
        try:
            st = os.lstat(file_abs)
        except OSError as e:
            rel = self._relative(file_abs)
            return PathCandidate(
                rel_path=rel or file_abs.name, abs_path=file_abs, hidden=is_hidden_path(rel or file_abs.name),
                excluded=True, reason=Reason.UNREADABLE, detail=str(e),
            )
        if stat.S_ISLNK(st.st_mode) or not stat.S_ISREG(st.st_mode):
            return None

        rel = self._relative(file_abs)
        if rel is None:
            return PathCandidate(
                rel_path=file_abs.as_posix(), abs_path=file_abs, size_bytes=st.st_size,
                excluded=True, reason=Reason.OUTSIDE_ROOT, detail="outside root",
            )

        base = dict(rel_path=rel, abs_path=file_abs, size_bytes=st.st_size, hidden=is_hidden_path(rel))

        if first_match(rel, self.rules.always_ignore) is not None:
            return PathCandidate(**base, excluded=True, reason=Reason.IGNORE_RULE, detail="ignore.always")
        if first_match(rel, self.rules.sensitive) is not None:
            return PathCandidate(**base, excluded=True, reason=Reason.SENSITIVE_RULE,
                                 detail="sensitive.exclude_globs")
        if self.rules.use_gitignore and self.gitignore.matches(rel):
            return PathCandidate(**base, excluded=True, reason=Reason.VCS_IGNORE_RULE, detail=".gitignore")
        if file_abs.suffix.lower() in self.binary_extensions:
            return PathCandidate(**base, excluded=True, reason=Reason.BINARY, detail="binary extension")

        try:
            is_binary = self._sniff(file_abs)
        except OSError as e:
            return PathCandidate(**base, excluded=True, reason=Reason.UNREADABLE, detail=str(e))
        if is_binary:
            return PathCandidate(**base, excluded=True, reason=Reason.BINARY, detail="binary sniff")

        return PathCandidate(**base)

    def _relative(self, file_abs: Path) -> Optional[str]:
        try:
            rel = file_abs.relative_to(self.root_dir)
        except ValueError:
            return None
        rel_str = rel.as_posix()
        if rel_str.startswith("../") or rel_str == "..":
            return None
        return rel_str
