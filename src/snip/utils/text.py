# src/snip/utils/text.py
from pathlib import PurePosixPath

SNIFF_BYTES = 8 * 1024
NON_TEXT_RATIO = 0.30

_TEXT_CONTROL = frozenset(b"\n\r\t")

_LANGUAGES = {
    ".go": "go",
    ".js": "javascript",
    ".ts": "typescript",
    ".py": "python",
    ".rb": "ruby",
    ".java": "java",
    ".kt": "kotlin",
    ".rs": "rust",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".cc": "cpp",
    ".cxx": "cpp",
    ".hpp": "cpp",
    ".cs": "csharp",
    ".php": "php",
    ".sh": "bash",
    ".sql": "sql",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".json": "json",
    ".toml": "toml",
    ".md": "md",
}


def sniff_binary(sample: bytes) -> bool:
    """
    True if the sample looks binary: it has a NUL byte, or more than 30%
    of it is neither printable ASCII nor common whitespace.
    """
    if not sample:
        return False
    if b"\0" in sample:
        return True
    non_text = sum(1 for b in sample if not (0x20 <= b <= 0x7E or b in _TEXT_CONTROL))
    return non_text / len(sample) > NON_TEXT_RATIO


def normalize_newlines(text: str) -> str:
    """Converts CRLF and lone CR to LF."""
    text = text.replace("\r\n", "\n")
    if "\r" in text:
        text = text.replace("\r", "\n")
    return text


def language_from_path(path: str) -> str:
    """Best-effort code fence language for a file path ('' if unknown)."""
    return _LANGUAGES.get(PurePosixPath(path).suffix.lower(), "")
