"""Unit tests for recipient classification and preview."""

import pytest

from paylink.services.recipient_classifier import RecipientKind, classify, preview


class TestClassify:
    """Tests for classify()."""

    def test_wallet_is_lowercased(self):
        """Mixed-case address should classify as WALLET in lowercase."""
        result = classify("0x" + "AB" * 20)
        assert result.kind == RecipientKind.WALLET
        assert result.value == "0x" + "ab" * 20

    def test_email_is_lowercased(self):
        result = classify("  Alice@Example.COM ")
        assert result.kind == RecipientKind.EMAIL
        assert result.value == "alice@example.com"

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("(415) 555-0123", "+14155550123"),
            ("1-415-555-0123", "+14155550123"),
            ("+44 20 7946 0958", "+442079460958"),
            ("4155550123", "+14155550123"),
            ("123", "+123"),
        ],
    )
    def test_phone_normalized_to_e164(self, raw, expected):
        result = classify(raw)
        assert result.kind == RecipientKind.PHONE
        assert result.value == expected

    @pytest.mark.parametrize(
        "raw",
        [
            "",
            "   ",
            None,
            "hello",
            "0x1234",
            "user@localhost",
            "a@b@c.com",
            "+0123",
            "7",
            "call me 4155550123",
            "0x" + "g" * 40,
        ],
    )
    def test_unknown(self, raw):
        """Anything that is not a wallet, email or phone is UNKNOWN."""
        assert classify(raw).kind == RecipientKind.UNKNOWN

    def test_wallet_wins_over_phone(self):
        """First matching rule wins: a hex address is never a phone."""
        assert classify("0x" + "1" * 40).kind == RecipientKind.WALLET

    def test_deferred_kinds(self):
        assert classify("user@example.com").is_deferred
        assert classify("+14155550123").is_deferred
        assert not classify("0x" + "1" * 40).is_deferred


class TestPreview:
    """Tests for preview()."""

    def test_preview_matches_classify(self):
        for raw in ("user@example.com", "(415) 555-0123", "0x" + "a" * 40, "nope"):
            result = preview(raw)
            assert result.type == classify(raw).kind
            assert result.normalized == classify(raw).value

    def test_preview_is_idempotent(self):
        assert preview("User@Example.com") == preview("User@Example.com")

    def test_unknown_preview_is_invalid(self):
        result = preview("nope")
        assert result.valid is False
        assert result.normalized is None
        assert result.explanation

    def test_email_preview_explains_escrow(self):
        result = preview("user@example.com")
        assert result.valid is True
        assert "escrow" in result.explanation.lower()
