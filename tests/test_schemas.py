"""Tests for ConsentRecord and ClientConfig."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from consent_banner.schemas.consent import ClientConfig, ConsentRecord

# ── ConsentRecord ────────────────────────────────────────────────────


class TestConsentRecord:
    def test_valid_record(self, make_record):
        record = make_record()
        assert record.accepted is True
        assert record.version == "2025-09-15"
        assert record.timestamp == 1_700_000_000_000

    def test_rejects_not_accepted(self):
        with pytest.raises(ValidationError):
            ConsentRecord(accepted=False, version="2025-09-15", timestamp=1)

    def test_rejects_empty_version(self):
        with pytest.raises(ValidationError):
            ConsentRecord(accepted=True, version="", timestamp=1)

    def test_frozen(self, make_record):
        record = make_record()
        with pytest.raises(ValidationError):
            record.version = "other"

    def test_is_current(self, make_record):
        record = make_record(version="2025-09-01")
        assert record.is_current("2025-09-01")
        assert not record.is_current("2025-09-15")

    def test_to_json_is_compact_and_ordered(self, make_record):
        assert make_record().to_json() == (
            '{"accepted":true,"version":"2025-09-15","timestamp":1700000000000}'
        )

    def test_from_json_parses_valid(self, make_record):
        record = make_record()
        assert ConsentRecord.from_json(record.to_json()) == record


class TestConsentRecordMalformed:
    """Anything that is not a valid record parses to None, never raises."""

    @pytest.mark.parametrize("raw", [
        None,
        "",
        "not json",
        "{",
        "[]",
        "null",
        '{"accepted":true}',
        '{"version":"2025-09-15","timestamp":1}',
        '{"accepted":false,"version":"2025-09-15","timestamp":1}',
        '{"accepted":true,"version":"","timestamp":1}',
        '{"accepted":"true","version":"2025-09-15","timestamp":1}',
        '{"accepted":true,"version":"2025-09-15","timestamp":"soon"}',
    ])
    def test_returns_none(self, raw):
        assert ConsentRecord.from_json(raw) is None


# ── ClientConfig ─────────────────────────────────────────────────────


class TestClientConfig:
    def test_parses_host_payload_keys(self):
        config = ClientConfig.model_validate({
            "version": "2025-09-15",
            "duration": 30,
            "ajaxUrl": "https://example.com/consent/dismiss",
            "nonce": "abc123",
            "isSecure": True,
            "cookiePath": "/blog/",
            "cookieDomain": "example.com",
        })
        assert config.ajax_url == "https://example.com/consent/dismiss"
        assert config.is_secure is True
        assert config.path == "/blog/"
        assert config.cookie_domain == "example.com"
        assert config.max_age == 30 * 86400

    def test_dump_by_alias_round_trips_keys(self):
        config = ClientConfig(version="v1", ajax_url="/consent/dismiss", nonce="n")
        dumped = config.model_dump(by_alias=True)
        assert set(dumped) == {
            "version", "duration", "ajaxUrl", "nonce", "isSecure", "cookiePath", "cookieDomain",
        }

    @pytest.mark.parametrize(("duration", "days"), [
        (None, 180),
        (0, 180),
        (-5, 180),
        ("", 180),
        ("abc", 180),
        ("30", 30),
        ("45days", 45),
        (365, 365),
    ])
    def test_duration_days(self, duration, days):
        assert ClientConfig(version="v1", duration=duration).duration_days == days

    def test_default_path_and_domain(self):
        config = ClientConfig(version="v1", cookiePath="", cookieDomain=False)
        assert config.path == "/"
        assert config.cookie_domain is None

    def test_can_acknowledge_needs_url_and_nonce(self):
        assert ClientConfig(version="v1", ajax_url="/x", nonce="n").can_acknowledge
        assert not ClientConfig(version="v1", ajax_url="/x").can_acknowledge
        assert not ClientConfig(version="v1", nonce="n").can_acknowledge

    def test_requires_version(self):
        with pytest.raises(ValidationError):
            ClientConfig(version="")


class TestClientConfigCoercion:
    """Loosely typed host payloads parse instead of failing the page load."""

    @pytest.mark.parametrize(("duration", "days"), [
        (30.5, 30),
        (1.0, 1),
        (0.4, 180),
        (-2.5, 180),
        (float("nan"), 180),
    ])
    def test_fractional_duration_is_floored(self, duration, days):
        assert ClientConfig.model_validate({"version": "v", "duration": duration}).duration_days == days

    @pytest.mark.parametrize(("raw", "expected"), [
        ("", False),
        (None, False),
        ("1", True),
        ("0", False),
        (True, True),
    ])
    def test_php_style_is_secure(self, raw, expected):
        assert ClientConfig.model_validate({"version": "v", "isSecure": raw}).is_secure is expected

    @pytest.mark.parametrize(("raw", "expected"), [
        (2, "2"),
        (2025.1, "2025.1"),
        ("2025-09-15", "2025-09-15"),
    ])
    def test_scalar_version_becomes_string(self, raw, expected):
        assert ClientConfig.model_validate({"version": raw}).version == expected

    def test_boolean_version_still_rejected(self):
        with pytest.raises(ValidationError):
            ClientConfig.model_validate({"version": True})
