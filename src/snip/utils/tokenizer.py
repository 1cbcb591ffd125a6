# src/snip/utils/tokenizer.py
import logging

import tiktoken

logger = logging.getLogger(__name__)

ENCODINGS = ("cl100k_base", "p50k_base")


class Tokenizer:
    """Token estimates for listings. Counts are approximate when no encoding can be loaded."""

    _encoding = None
    _unavailable = False

    @classmethod
    def _load(cls):
        last_error = None
        for name in ENCODINGS:
            try:
                return tiktoken.get_encoding(name)
            except Exception as e:
                last_error = e
        raise RuntimeError(f"no tiktoken encoding available: {last_error}")

    @staticmethod
    def count(text: str) -> int:
        if Tokenizer._encoding is None and not Tokenizer._unavailable:
            try:
                Tokenizer._encoding = Tokenizer._load()
            except RuntimeError as e:
                # Encodings are fetched on first use; offline runs estimate instead.
                logger.debug("estimating tokens: %s", e)
                Tokenizer._unavailable = True
        if Tokenizer._encoding is None:
            return len(text) // 4
        return len(Tokenizer._encoding.encode(text, disallowed_special=()))
