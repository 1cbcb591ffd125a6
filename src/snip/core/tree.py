# src/snip/core/tree.py
from typing import Dict, List, Optional


def generate_project_tree(file_paths: List[str], root_name: str = ".", max_depth: Optional[int] = None) -> str:
    """
    Generates a string representation of the project tree.

    Directories are listed before files, each group alphabetically. Nothing
    deeper than `max_depth` levels below the root is shown.
    """
    tree_dict: Dict = {}
    for path in sorted(file_paths):
        current_level = tree_dict
        for part in path.split("/"):
            current_level = current_level.setdefault(part, {})

    depth_limit = max(1, max_depth) if max_depth is not None else None
    lines = [root_name]

    def _generate_lines_recursive(subtree: Dict, prefix: str, depth: int):
        if depth_limit is not None and depth > depth_limit:
            return
        entries = sorted(subtree.items(), key=lambda item: (not item[1], item[0]))
        for i, (name, content) in enumerate(entries):
            is_last = (i == len(entries) - 1)
            connector = "└── " if is_last else "├── "
            lines.append(f"{prefix}{connector}{name}")

            if content:
                new_prefix = prefix + ("    " if is_last else "│   ")
                _generate_lines_recursive(content, new_prefix, depth + 1)

    _generate_lines_recursive(tree_dict, "", 1)
    return "\n".join(lines) + "\n"
