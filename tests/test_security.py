"""Tests for webhook signing helpers."""
from __future__ import annotations

from aurix.utils.security import sign_payload, verify_signature


class TestSignatures:
    """Tests for HMAC signing."""

    def test_round_trip(self) -> None:
        signature = sign_payload(b'{"callSid": "CA1"}', "s3cret")

        assert verify_signature(b'{"callSid": "CA1"}', signature, "s3cret") is True

    def test_string_and_bytes_agree(self) -> None:
        assert sign_payload("body", "k") == sign_payload(b"body", "k")

    def test_tampered_body(self) -> None:
        signature = sign_payload(b"original", "s3cret")

        assert verify_signature(b"tampered", signature, "s3cret") is False

    def test_wrong_secret_or_missing_signature(self) -> None:
        signature = sign_payload(b"body", "s3cret")

        assert verify_signature(b"body", signature, "other") is False
        assert verify_signature(b"body", None, "s3cret") is False

    def test_defaults_to_configured_secret(self, fast_settings) -> None:
        assert sign_payload(b"body") == sign_payload(b"body", fast_settings.WEBHOOK_SECRET)
