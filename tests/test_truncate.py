# tests/test_truncate.py
import pytest

from snip.core.truncate import InvalidEncoding, truncate_bytes, truncate_file, truncation_marker


def test_line_limit():
    t = truncate_bytes(b"l1\nl2\nl3\nl4\nl5\n", max_lines=3, max_bytes=1000)
    assert t.content == "l1\nl2\nl3\n" + truncation_marker(5, 3)
    assert t.content.endswith("… [TRUNCATED: original_lines=5 kept_lines=3]\n")
    assert (t.original_lines, t.kept_lines, t.truncated) == (5, 3, True)
    assert t.original_bytes == 15
    assert t.kept_bytes == 9


def test_within_limits_is_untouched():
    t = truncate_bytes(b"a\nb\nc\n", max_lines=3, max_bytes=1000)
    assert t.content == "a\nb\nc\n"
    assert not t.truncated
    assert t.original_lines == t.kept_lines == 3


def test_byte_limit_keeps_whole_lines():
    t = truncate_bytes(b"abc\ndef\n", max_lines=100, max_bytes=5)
    assert t.content == "abc\n" + truncation_marker(2, 1)
    assert t.kept_bytes == 4
    assert t.original_bytes == 8


def test_first_line_too_long():
    t = truncate_bytes(b"abcdefgh\nxy\n", max_lines=10, max_bytes=4)
    assert t.content == truncation_marker(2, 0)
    assert t.kept_lines == 0
    assert t.kept_bytes == 0


def test_unterminated_last_line():
    t = truncate_bytes(b"a\nb", max_lines=10, max_bytes=100)
    assert t.original_lines == 2
    assert t.kept_lines == 2
    assert t.content == "a\nb"
    assert not t.truncated


def test_unterminated_last_line_counted_when_truncated():
    t = truncate_bytes(b"a\nb\nc", max_lines=1, max_bytes=100)
    assert t.original_lines == 3
    assert t.content == "a\n" + truncation_marker(3, 1)


def test_empty_file():
    t = truncate_bytes(b"", max_lines=10, max_bytes=100)
    assert t.content == ""
    assert (t.original_lines, t.original_bytes, t.truncated) == (0, 0, False)


def test_crlf_normalized():
    t = truncate_bytes(b"a\r\nb\r\n", max_lines=10, max_bytes=100)
    assert t.content == "a\nb\n"
    assert t.original_lines == 2


def test_multibyte_utf8():
    data = "héllo\nwörld\n".encode("utf-8")
    t = truncate_bytes(data, max_lines=1, max_bytes=100)
    assert t.content.startswith("héllo\n")
    assert t.kept_bytes == len("héllo\n".encode("utf-8"))


@pytest.mark.parametrize("data", [b"\xff\xfe\xfd", b"ok\n\xff\n", b"ok\n\xe2\x82"])
def test_invalid_utf8_raises(data):
    with pytest.raises(InvalidEncoding):
        truncate_bytes(data, max_lines=10, max_bytes=100)


def test_invalid_utf8_after_limit_still_raises():
    with pytest.raises(InvalidEncoding):
        truncate_bytes(b"a\nb\nc\n\xff", max_lines=1, max_bytes=100)


def test_bounds_hold():
    data = "".join(f"line {i} {'x' * (i % 13)}\n" for i in range(200)).encode("utf-8")
    for max_lines, max_bytes in ((1, 10), (7, 50), (50, 400), (300, 100000)):
        t = truncate_bytes(data, max_lines, max_bytes)
        assert t.kept_lines <= max_lines
        assert t.kept_bytes <= max_bytes
        assert t.original_lines == 200
        assert t.truncated == (t.kept_lines < t.original_lines)


def test_truncation_is_idempotent(tmp_path):
    f = tmp_path / "a.txt"
    f.write_bytes(b"".join(b"row %d\n" % i for i in range(40)))
    first = truncate_file(f, max_lines=10, max_bytes=1000)
    second = truncate_file(f, max_lines=10, max_bytes=1000)
    assert first == second


def test_truncate_file_reads_large_input(tmp_path):
    f = tmp_path / "big.txt"
    f.write_bytes(b"0123456789\n" * 20000)
    t = truncate_file(f, max_lines=5, max_bytes=10 ** 6)
    assert t.original_lines == 20000
    assert t.original_bytes == 220000
    assert t.kept_lines == 5


def test_untruncated_output_truncates_to_itself():
    first = truncate_bytes(b"one\ntwo\r\nthree", max_lines=3, max_bytes=100)
    second = truncate_bytes(first.content.encode("utf-8"), max_lines=3, max_bytes=100)
    assert not second.truncated
    assert second.content == first.content
