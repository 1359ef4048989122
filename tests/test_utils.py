"""Tests for shared helpers."""

import pytest

from bbq.utils import decode_payload, format_size, is_binary, validate_issue_key, validate_url


def test_nul_byte_in_leading_window_marks_binary():
    assert is_binary(b"abc\x00def")
    assert not is_binary(b"plain text\n")
    assert not is_binary(b"a" * 8000 + b"\x00")


def test_invalid_utf8_marks_binary():
    assert is_binary(b"\xff\xfe")
    assert decode_payload("naïve".encode()) == "naïve"
    assert decode_payload(b"\xff\xfe") == b"\xff\xfe"


@pytest.mark.parametrize(
    "n_bytes, expected",
    [(0, "0 B"), (512, "512 B"), (1536, "1.5 KB"), (10 * 1024 * 1024, "10 MB")],
)
def test_format_size(n_bytes, expected):
    assert format_size(n_bytes) == expected


@pytest.mark.parametrize("key", ["CORE-1", "ab_2-10", "10042"])
def test_valid_issue_keys(key):
    validate_issue_key(key)


@pytest.mark.parametrize("key", ["", "CORE", "-1", "CORE-", "1-CORE"])
def test_invalid_issue_keys(key):
    with pytest.raises(ValueError):
        validate_issue_key(key)


def test_validate_url():
    validate_url("https://example.atlassian.net")
    with pytest.raises(ValueError, match="scheme"):
        validate_url("example.atlassian.net", "Jira URL")
    with pytest.raises(ValueError, match="empty"):
        validate_url("  ")
