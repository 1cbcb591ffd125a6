# src/snip/models.py
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple


class Reason(str, Enum):
    """Why a file left the selection, either at classification or later."""
    OUTSIDE_ROOT = "outside_root"
    IGNORE_RULE = "ignore_rule"
    SENSITIVE_RULE = "sensitive_rule"
    VCS_IGNORE_RULE = "vcs_ignore_rule"
    BINARY = "binary"
    UNREADABLE = "unreadable"
    INVALID_ENCODING = "invalid_encoding"
    BUDGET_EXCEEDED = "budget_exceeded"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Slice:
    """A named, priority-ranked group of files selected by globs."""
    name: str
    include: Tuple[str, ...] = ()
    exclude: Tuple[str, ...] = ()
    priority: int = 0


@dataclass(frozen=True)
class PathCandidate:
    """One regular file found under the root, with its classification."""
    rel_path: str
    abs_path: Path
    size_bytes: int = 0
    hidden: bool = False
    excluded: bool = False
    reason: Optional[Reason] = None
    detail: str = ""


@dataclass(frozen=True)
class SelectedFile:
    """A candidate that belongs to at least one enabled slice."""
    rel_path: str
    abs_path: Path
    size_bytes: int
    hidden: bool
    slices: Tuple[str, ...]
    primary_slice: str
    primary_priority: int
    excluded: bool = False
    reason: Optional[Reason] = None
    detail: str = ""


@dataclass(frozen=True)
class FileEntry:
    """An included file after per-file truncation."""
    rel_path: str
    abs_path: Path
    slices: Tuple[str, ...]
    primary_slice: str
    priority: int
    original_lines: int
    original_bytes: int
    kept_lines: int
    kept_bytes: int
    truncated: bool
    content: str


@dataclass(frozen=True)
class DroppedEntry:
    rel_path: str
    slices: Tuple[str, ...]
    primary_slice: str
    reason: Reason
    detail: str = ""


@dataclass(frozen=True)
class Plan:
    """
    Which files go into a bundle and which were left out.

    Included and dropped partition the selection universe: every file that
    belongs to an enabled slice appears in exactly one of them.
    """
    profile: str
    enabled_slices: Tuple[str, ...]
    included: Tuple[FileEntry, ...] = ()
    dropped: Tuple[DroppedEntry, ...] = ()
    dropped_slices: Tuple[str, ...] = ()
    hard_cut: bool = False

    @property
    def partial(self) -> bool:
        return bool(self.dropped) or self.hard_cut

    @property
    def active_slices(self) -> Tuple[str, ...]:
        """Enabled slices that have not been dropped for budget reasons."""
        gone = set(self.dropped_slices)
        return tuple(s for s in self.enabled_slices if s not in gone)


@dataclass(frozen=True)
class Selection:
    """Output of membership resolution, both lists sorted by path."""
    included: Tuple[SelectedFile, ...] = ()
    dropped: Tuple[SelectedFile, ...] = ()
