from keeperjira.common import extract_bearer_token, generate_token, tokens_match


def test_extract_bearer_token():
    assert extract_bearer_token("Bearer abc123") == "abc123"
    assert extract_bearer_token("bearer   abc123 ") == "abc123"
    assert extract_bearer_token(None) is None
    assert extract_bearer_token("") is None
    assert extract_bearer_token("Basic dXNlcjpwYXNz") is None
    assert extract_bearer_token("Bearer") is None


def test_tokens_match():
    assert tokens_match("s3cret", "s3cret")
    assert not tokens_match("s3cres", "s3cret")
    assert not tokens_match("short", "s3cret")
    assert not tokens_match("", "")
    assert not tokens_match(None, "s3cret")


def test_equal_length_tokens_use_constant_time_compare(monkeypatch):
    calls = []

    def compare_digest(a, b):
        calls.append((a, b))
        return a == b

    monkeypatch.setattr("keeperjira.common.token_utils.hmac.compare_digest", compare_digest)

    assert tokens_match("abcdef", "abcdef")
    assert not tokens_match("abcdeg", "abcdef")
    assert not tokens_match("abc", "abcdef")

    assert calls == [(b"abcdef", b"abcdef"), (b"abcdeg", b"abcdef")]


def test_generate_token_is_random():
    first, second = generate_token(), generate_token()
    assert first != second
    assert len(first) >= 40
