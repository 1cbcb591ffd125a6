# src/snip/core/budget.py
"""
Plan building and global budget enforcement.

The enforcer runs a fixed ladder of reductions, re-rendering after each
step: drop the lowest-priority slice (repeatedly, never the last one), halve
the per-file line limit once, and finally hard-cut the rendered text.
"""
import logging
from dataclasses import dataclass, replace
from typing import Callable, Iterable, List, Mapping, Optional, Sequence, Tuple

from snip.core.truncate import InvalidEncoding, truncate_file
from snip.errors import Cancelled, RenderError, SnipError
from snip.models import DroppedEntry, FileEntry, Plan, Reason, SelectedFile, Selection

logger = logging.getLogger(__name__)

HARD_CUT_MARKER = "\n… [BUNDLE TRUNCATED: budget_exceeded]\n"

RenderFn = Callable[[Plan], str]
StopFn = Callable[[], bool]


@dataclass(frozen=True)
class Limits:
    max_chars: int
    per_file_max_lines: int
    per_file_max_bytes: int


def order_plan(plan: Plan) -> Plan:
    """Included by priority descending then path; dropped by path."""
    included = sorted(plan.included, key=lambda f: (-f.priority, f.rel_path))
    dropped = sorted(plan.dropped, key=lambda d: (d.rel_path, d.reason.value))
    return replace(plan, included=tuple(included), dropped=tuple(dropped))


def _check_stop(should_stop: Optional[StopFn]) -> None:
    if should_stop is not None and should_stop():
        raise Cancelled("run cancelled")


def read_entry(
    rel_path, abs_path, slices, primary_slice, priority, max_lines: int, max_bytes: int,
) -> Tuple[Optional[FileEntry], Optional[DroppedEntry]]:
    """
    Runs the truncation engine on one file. Exactly one of the returned
    values is set: the entry, or a DroppedEntry describing the failure.
    """
    try:
        t = truncate_file(abs_path, max_lines, max_bytes)
    except InvalidEncoding:
        return None, DroppedEntry(rel_path, tuple(slices), primary_slice, Reason.INVALID_ENCODING, "invalid utf-8")
    except OSError as e:
        return None, DroppedEntry(rel_path, tuple(slices), primary_slice, Reason.UNREADABLE, str(e))
    return FileEntry(
        rel_path=rel_path,
        abs_path=abs_path,
        slices=tuple(slices),
        primary_slice=primary_slice,
        priority=priority,
        original_lines=t.original_lines,
        original_bytes=t.original_bytes,
        kept_lines=t.kept_lines,
        kept_bytes=t.kept_bytes,
        truncated=t.truncated,
        content=t.content,
    ), None


def build_plan(
    profile: str,
    enabled_ordered: Sequence[str],
    selection: Selection,
    limits: Limits,
    should_stop: Optional[StopFn] = None,
) -> Plan:
    """Reads and truncates selected files; classifier exclusions become dropped entries."""
    dropped: List[DroppedEntry] = [
        DroppedEntry(f.rel_path, f.slices, f.primary_slice, f.reason or Reason.UNREADABLE, f.detail)
        for f in selection.dropped
    ]
    included: List[FileEntry] = []
    for f in selection.included:
        _check_stop(should_stop)
        entry, failure = read_entry(
            f.rel_path, f.abs_path, f.slices, f.primary_slice, f.primary_priority,
            limits.per_file_max_lines, limits.per_file_max_bytes,
        )
        if failure is not None:
            logger.debug("dropping %s: %s (%s)", f.rel_path, failure.reason, failure.detail)
            dropped.append(failure)
        else:
            included.append(entry)

    return order_plan(Plan(
        profile=profile,
        enabled_slices=tuple(enabled_ordered),
        included=tuple(included),
        dropped=tuple(dropped),
    ))


def slice_drop_order(names: Iterable[str], priorities: Mapping[str, int]) -> List[str]:
    """Priority ascending, then name ascending."""
    return sorted(names, key=lambda s: (priorities.get(s, 0), s))


def drop_lowest_slice(plan: Plan, priorities: Mapping[str, int]) -> Optional[Plan]:
    """
    Drops the lowest-priority active slice and every included file whose
    primary slice it was. Returns None when only one slice is left.
    """
    active = plan.active_slices
    if len(active) <= 1:
        return None
    victim = slice_drop_order(active, priorities)[0]
    kept = tuple(f for f in plan.included if f.primary_slice != victim)
    removed = tuple(
        DroppedEntry(f.rel_path, f.slices, f.primary_slice, Reason.BUDGET_EXCEEDED, "slice dropped")
        for f in plan.included if f.primary_slice == victim
    )
    return order_plan(replace(
        plan,
        included=kept,
        dropped=plan.dropped + removed,
        dropped_slices=plan.dropped_slices + (victim,),
    ))


def tighten_truncation(plan: Plan, max_lines: int, max_bytes: int, should_stop: Optional[StopFn] = None) -> Plan:
    """Re-runs per-file truncation over the included files with new limits."""
    included: List[FileEntry] = []
    dropped = list(plan.dropped)
    for f in plan.included:
        _check_stop(should_stop)
        entry, failure = read_entry(
            f.rel_path, f.abs_path, f.slices, f.primary_slice, f.priority, max_lines, max_bytes,
        )
        if failure is not None:
            dropped.append(failure)
        else:
            included.append(entry)
    return order_plan(replace(plan, included=tuple(included), dropped=tuple(dropped)))


def hard_cut_text(text: str, max_chars: int, marker: str = HARD_CUT_MARKER) -> str:
    """Cuts text on a character boundary so that text plus marker fits max_chars."""
    if max_chars <= len(marker):
        return marker[:max(max_chars, 0)]
    return text[:max_chars - len(marker)] + marker


class BudgetEnforcer:
    """Shrinks a plan until its rendered form fits the character budget."""

    def __init__(
        self,
        limits: Limits,
        slice_priorities: Mapping[str, int],
        render: RenderFn,
        should_stop: Optional[StopFn] = None,
    ):
        self.limits = limits
        self.slice_priorities = dict(slice_priorities)
        self._render_fn = render
        self.should_stop = should_stop

    def render(self, plan: Plan) -> str:
        try:
            return self._render_fn(plan)
        except SnipError:
            raise
        except Exception as e:
            raise RenderError(f"render failed: {e}") from e

    def fits(self, text: str) -> bool:
        return len(text) <= self.limits.max_chars

    def enforce(self, plan: Plan) -> Tuple[Plan, str]:
        _check_stop(self.should_stop)
        text = self.render(plan)
        if self.fits(text):
            return plan, text
        logger.debug("rendered %d chars over budget %d", len(text), self.limits.max_chars)

        current = plan
        while True:
            _check_stop(self.should_stop)
            reduced = drop_lowest_slice(current, self.slice_priorities)
            if reduced is None:
                break
            current = reduced
            logger.debug("dropped slice %s", current.dropped_slices[-1])
            text = self.render(current)
            if self.fits(text):
                return current, text

        _check_stop(self.should_stop)
        max_lines = max(1, self.limits.per_file_max_lines // 2)
        current = tighten_truncation(current, max_lines, self.limits.per_file_max_bytes, self.should_stop)
        logger.debug("tightened per-file line limit to %d", max_lines)
        text = self.render(current)
        if self.fits(text):
            return current, text

        logger.debug("hard-cutting rendered bundle to %d chars", self.limits.max_chars)
        return replace(current, hard_cut=True), hard_cut_text(text, self.limits.max_chars)
