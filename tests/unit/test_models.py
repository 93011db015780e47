"""
Tests for idempotency keys, request hashing and subscriber addresses.
"""

import pytest

from newsletter_service.core.idempotency import (
    IdempotencyKey,
    InvalidIdempotencyKey,
    compute_request_hash,
)
from newsletter_service.core.newsletters import IssueContent, NewsletterIssue, SubscriberEmail


class TestIdempotencyKey:
    """Key validation."""

    def test_valid_key_is_trimmed(self):
        assert IdempotencyKey.parse("  abc-123  ").value == "abc-123"

    def test_max_length_accepted(self):
        assert IdempotencyKey.parse("a" * 50).value == "a" * 50

    @pytest.mark.parametrize("raw", [None, "", "   ", "a" * 51])
    def test_invalid_keys_rejected(self, raw):
        with pytest.raises(InvalidIdempotencyKey):
            IdempotencyKey.parse(raw)

    def test_invalid_key_is_a_value_error(self):
        with pytest.raises(ValueError):
            IdempotencyKey.parse("")


class TestRequestHash:
    """Payload fingerprints."""

    def test_independent_of_key_order(self):
        assert compute_request_hash({"a": 1, "b": 2}) == compute_request_hash({"b": 2, "a": 1})

    def test_differs_for_different_payloads(self):
        assert compute_request_hash({"title": "One"}) != compute_request_hash({"title": "Two"})


class TestSubscriberEmail:
    """Address parsing."""

    def test_valid_address(self):
        assert SubscriberEmail.parse(" ursula@gmail.com ") == "ursula@gmail.com"

    @pytest.mark.parametrize("raw", ["", "ursuladomain.com", "@domain.com", "not-an-email"])
    def test_invalid_address(self, raw):
        with pytest.raises(ValueError):
            SubscriberEmail.parse(raw)
        assert SubscriberEmail.try_parse(raw) is None


class TestIssueContent:
    """Issue content validation."""

    def test_whitespace_is_stripped(self):
        content = IssueContent(title="  Weekly  ", html_content="<p>x</p>", text_content="x")
        assert content.title == "Weekly"

    def test_empty_title_rejected(self):
        with pytest.raises(ValueError):
            IssueContent(title="   ", html_content="<p>x</p>", text_content="x")

    def test_issue_from_content(self):
        content = IssueContent(title="Weekly", html_content="<p>x</p>", text_content="x")
        issue = NewsletterIssue.from_content(content, created_by="op-1")
        assert issue.title == "Weekly"
        assert issue.html_body == "<p>x</p>"
        assert issue.text_body == "x"
        assert issue.created_by == "op-1"
