# src/snip/core/selector.py
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence, Tuple

from snip.core.ignore import first_match, glob_match, names_hidden_segment
from snip.errors import ConfigError
from snip.models import PathCandidate, SelectedFile, Selection, Slice

_SLICE_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*$")


@dataclass(frozen=True)
class Modifier:
    """A run-time toggle: `+name` enables a slice, `-name` disables it."""
    name: str
    enable: bool


class SliceMatch(NamedTuple):
    member: bool
    include_pattern: Optional[str]
    explicit_hidden: bool
    exclude_pattern: Optional[str] = None


def parse_modifiers(args: Iterable[str]) -> List[Modifier]:
    mods = []
    for arg in args:
        if not arg:
            continue
        if arg[0] not in "+-":
            raise ConfigError(f"invalid modifier {arg!r}")
        name = arg[1:]
        if not _SLICE_NAME_RE.match(name):
            raise ConfigError(f"invalid slice name {name!r}")
        mods.append(Modifier(name=name, enable=arg[0] == "+"))
    return mods


def enabled_slices(cfg, profile: str, modifiers: Sequence[Modifier] = ()) -> List[str]:
    """Resolves a profile plus modifiers into the sorted list of enabled slice names."""
    p = cfg.profiles.get(profile)
    if p is None:
        raise ConfigError(f"unknown profile {profile!r}")
    enabled: Dict[str, bool] = {}
    for name in p.enable:
        if name not in cfg.slices:
            raise ConfigError(f"profile {profile!r} enables unknown slice {name!r}")
        enabled[name] = True
    for m in modifiers:
        if m.name not in cfg.slices:
            raise ConfigError(f"unknown slice {m.name!r}")
        enabled[m.name] = m.enable
    return sorted(name for name, on in enabled.items() if on)


def ordered_slices(names: Iterable[str], slices: Mapping[str, Slice]) -> List[str]:
    """Priority descending, then name ascending."""
    return sorted(names, key=lambda n: (-slices[n].priority, n))


def match_slice(rel_path: str, hidden: bool, sl: Slice, allow_hidden: bool = False) -> SliceMatch:
    """
    Decides whether a path belongs to one slice.

    A hidden path only counts when hidden files are allowed globally or the
    include pattern that matched spells out a dot-segment itself.
    """
    pattern = None
    explicit = False
    for pat in sl.include:
        if not glob_match(pat, rel_path):
            continue
        if pattern is None:
            pattern = pat
        if names_hidden_segment(pat):
            pattern, explicit = pat, True
            break

    if pattern is None:
        return SliceMatch(False, None, False)
    if hidden and not allow_hidden and not explicit:
        return SliceMatch(False, pattern, explicit)

    excluded_by = first_match(rel_path, sl.exclude)
    if excluded_by is not None:
        return SliceMatch(False, pattern, explicit, excluded_by)
    return SliceMatch(True, pattern, explicit)


def primary_slice(members: Iterable[str], priorities: Mapping[str, int]) -> Tuple[str, int]:
    """Highest priority wins; equal priorities go to the alphabetically first name."""
    best = min(members, key=lambda s: (-priorities[s], s))
    return best, priorities[best]


def resolve_membership(
    candidates: Iterable[PathCandidate],
    slices: Mapping[str, Slice],
    enabled: Sequence[str],
    allow_hidden: bool = False,
) -> Selection:
    """
    Assigns every candidate to its member slices.

    Files in no enabled slice are left out silently. Files that belong to a
    slice but were excluded by the classifier go to `dropped`.
    """
    if not enabled:
        raise ConfigError("no enabled slices")
    active = [slices[name] for name in sorted(enabled)]
    priorities = {s.name: s.priority for s in active}

    included: List[SelectedFile] = []
    dropped: List[SelectedFile] = []
    for c in candidates:
        members = tuple(s.name for s in active if match_slice(c.rel_path, c.hidden, s, allow_hidden).member)
        if not members:
            continue
        primary, priority = primary_slice(members, priorities)
        selected = SelectedFile(
            rel_path=c.rel_path,
            abs_path=c.abs_path,
            size_bytes=c.size_bytes,
            hidden=c.hidden,
            slices=members,
            primary_slice=primary,
            primary_priority=priority,
            excluded=c.excluded,
            reason=c.reason,
            detail=c.detail,
        )
        (dropped if c.excluded else included).append(selected)

    included.sort(key=lambda f: f.rel_path)
    dropped.sort(key=lambda f: f.rel_path)
    return Selection(included=tuple(included), dropped=tuple(dropped))


def explain_slice_match(rel_path: str, sl: Slice) -> SliceMatch:
    """Include/exclude match details for one slice, ignoring the hidden policy."""
    inc = first_match(rel_path, sl.include)
    exc = first_match(rel_path, sl.exclude)
    return SliceMatch(
        member=inc is not None and exc is None,
        include_pattern=inc,
        explicit_hidden=inc is not None and names_hidden_segment(inc),
        exclude_pattern=exc,
    )
