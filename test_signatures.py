# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Request signature verification."""
import pytest

from casebot.services.signatures import (
    SignatureVerificationError, compute_signature, verify_signature,
)

SECRET = "8f742231b10e8888abcd99yyyzzz85a5"
BODY = b"token=x&command=%2Fcase&text=help"
NOW = 1_760_000_000


def _verify(**overrides):
    kwargs = dict(
        signing_secret=SECRET,
        timestamp=str(NOW),
        signature=compute_signature(SECRET, str(NOW), BODY),
        raw_body=BODY,
        clock=lambda: NOW,
    )
    kwargs.update(overrides)
    verify_signature(**kwargs)


class TestVerifySignature:
    def test_valid(self):
        _verify()

    def test_signature_format(self):
        assert compute_signature(SECRET, "1", b"").startswith("v0=")

    @pytest.mark.parametrize("field,value,reason", [
        ("signing_secret", "", "missing_signing_secret"),
        ("timestamp", None, "missing_timestamp_header"),
        ("signature", "", "missing_signature_header"),
        ("timestamp", "abc", "invalid_timestamp"),
        ("signature", "v0=deadbeef", "bad_signature"),
        ("raw_body", b"tampered", "bad_signature"),
    ])
    def test_rejections(self, field, value, reason):
        with pytest.raises(SignatureVerificationError) as exc:
            _verify(**{field: value})
        assert exc.value.reason == reason

    def test_replay_window(self):
        with pytest.raises(SignatureVerificationError) as exc:
            _verify(clock=lambda: NOW + 301)
        assert exc.value.reason.startswith("stale_timestamp")

    def test_inside_replay_window(self):
        _verify(clock=lambda: NOW + 299)
