# src/snip/core/render.py
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from snip.config import FileBlockConfig, ManifestConfig, RenderConfig
from snip.core.tree import generate_project_tree
from snip.models import DroppedEntry, FileEntry, Plan
from snip.utils.text import language_from_path


@dataclass(frozen=True)
class BundleInfo:
    """Header metadata for a bundle. Contains nothing run-specific such as a clock reading."""
    repo: str
    root: str
    profile: str
    enabled: Tuple[str, ...]
    git_sha: str
    version: str


def order_included(files: Sequence[FileEntry], group_by_slice: bool) -> List[FileEntry]:
    """Groups files by primary slice (priority descending, then name), paths sorted within."""
    if not group_by_slice:
        return sorted(files, key=lambda f: f.rel_path)
    groups: Dict[str, List[FileEntry]] = {}
    priority: Dict[str, int] = {}
    for f in files:
        groups.setdefault(f.primary_slice, []).append(f)
        priority[f.primary_slice] = max(priority.get(f.primary_slice, f.priority), f.priority)
    ordered: List[FileEntry] = []
    for name in sorted(groups, key=lambda s: (-priority[s], s)):
        ordered.extend(sorted(groups[name], key=lambda f: f.rel_path))
    return ordered


def _apply_path_token(template: str, path: str) -> str:
    return template.replace("{path}", path) if template else ""


def _sanitize(detail: str) -> str:
    return detail.replace("\t", " ").replace("\r", " ").replace("\n", " ")


class MarkdownRenderer:
    """Turns a plan into a markdown bundle. Never mutates the plan."""

    def __init__(self, config: RenderConfig):
        self.config = config

    @property
    def newline(self) -> str:
        return self.config.newline or "\n"

    def render(self, info: BundleInfo, plan: Plan) -> str:
        files = order_included(plan.included, self.config.manifest.group_by_slice)
        out: List[str] = []

        out += [
            "# snip bundle",
            "",
            f"repo: {info.repo}",
            f"root: {info.root}",
            f"profile: {info.profile}",
            f"enabled_slices: [{', '.join(info.enabled)}]",
            f"git_sha: {info.git_sha}",
            f"snip_version: {info.version}",
        ]

        if self.config.include_tree:
            tree = generate_project_tree([f.rel_path for f in files], ".", self.config.tree_depth)
            out += ["", "## Tree", "", "```"]
            out += tree.rstrip("\n").split("\n")
            out.append("```")

        if self.config.include_manifest:
            out += ["", "## Manifest (included)", ""]
            out += self._manifest_included(files, self.config.manifest, self.config.file_block)
            out += ["", "## Manifest (dropped)", ""]
            out += self._manifest_dropped(plan.dropped, plan.dropped_slices, self.config.manifest)

        block = self.config.file_block
        custom = bool(block.header or block.footer)
        for idx, f in enumerate(files, start=1):
            out.append("")
            if custom:
                header = _apply_path_token(block.header, f.rel_path)
                if header:
                    out.append(header)
            else:
                out += ["---", "", f"## {idx}) {f.rel_path}"]
            out += [
                f"lines: {f.original_lines}",
                f"bytes: {f.original_bytes}",
                f"slices: [{', '.join(f.slices)}]",
                f"truncated: {str(f.truncated).lower()}",
                "",
            ]
            body = f.content[:-1] if f.content.endswith("\n") else f.content
            if self.config.code_fences:
                out.append("```" + language_from_path(f.rel_path))
                out += body.split("\n") if body else []
                out.append("```")
            else:
                out += body.split("\n") if body else []
            if custom:
                footer = _apply_path_token(block.footer, f.rel_path)
                if footer:
                    out.append(footer)

        nl = self.newline
        return nl.join(out) + nl

    def _manifest_included(self, files: Sequence[FileEntry], opt: ManifestConfig, block: FileBlockConfig) -> List[str]:
        lines: List[str] = []
        if block.header or block.footer:
            # Self-describe delimiters for downstream parsers.
            if block.header:
                lines.append(f'delimiter_header: "{block.header}"')
            if block.footer:
                lines.append(f'delimiter_footer: "{block.footer}"')
            lines.append("")

        width = max((len(f.rel_path) for f in files), default=0)
        current = None
        for idx, f in enumerate(files, start=1):
            if opt.group_by_slice and f.primary_slice != current:
                current = f.primary_slice
                lines += ["", f"[{current}]"]
            parts = []
            if opt.include_line_counts:
                parts.append(f"lines={f.original_lines}")
            if opt.include_byte_counts:
                parts.append(f"bytes={f.original_bytes}")
            parts.append(f"slices=[{','.join(f.slices)}]")
            if opt.include_truncation_notes:
                parts.append(f"truncated={str(f.truncated).lower()}")
            lines.append(f"{idx:>3}  {f.rel_path:<{width}}  {' '.join(parts)}")
        return lines

    def _manifest_dropped(
        self, dropped: Sequence[DroppedEntry], dropped_slices: Sequence[str], opt: ManifestConfig,
    ) -> List[str]:
        lines = [f"- slice={s} reason=budget_exceeded" for s in sorted(dropped_slices)]
        for d in dropped:
            note = f"- {d.rel_path} reason={d.reason.value}"
            if d.detail and opt.include_unreadable_notes:
                note += f" detail={_sanitize(d.detail)}"
            if d.primary_slice:
                note += f" slice={d.primary_slice}"
            lines.append(note)
        return lines
