# tests/test_tokenizer.py
import pytest

from snip.utils import tokenizer
from snip.utils.tokenizer import Tokenizer

# Saved before the autouse fixture swaps in the offline estimate.
_REAL_COUNT = Tokenizer.__dict__["count"]


class _FakeEncoding:
    def encode(self, text, disallowed_special=()):
        return text.split()


@pytest.fixture
def real_count(monkeypatch):
    monkeypatch.setattr(Tokenizer, "count", _REAL_COUNT)
    monkeypatch.setattr(Tokenizer, "_encoding", None)
    monkeypatch.setattr(Tokenizer, "_unavailable", False)


def test_count_uses_first_available_encoding(real_count, monkeypatch):
    tried = []

    def get_encoding(name):
        tried.append(name)
        if name == "cl100k_base":
            raise ValueError("not cached")
        return _FakeEncoding()

    monkeypatch.setattr(tokenizer.tiktoken, "get_encoding", get_encoding)
    assert Tokenizer.count("one two three") == 3
    assert tried == ["cl100k_base", "p50k_base"]


def test_count_estimates_when_offline(real_count, monkeypatch):
    def get_encoding(name):
        raise OSError("network unreachable")

    monkeypatch.setattr(tokenizer.tiktoken, "get_encoding", get_encoding)
    assert Tokenizer.count("abcdefgh") == 2
    assert Tokenizer._unavailable
