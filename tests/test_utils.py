"""Tests for utility functions."""

import pytest

from ssm_tunnel.common.utils import (
    MAX_PORT,
    MIN_PORT,
    default_port_for_url,
    first_value,
    parse_port,
    strip_url_to_host,
    validate_non_empty_string,
    validate_port,
)


class TestValidatePort:
    """Test port validation function."""

    def test_valid_ports(self):
        validate_port(1, "Test port")
        validate_port(443, "HTTPS port")
        validate_port(65535, "Max port")

    def test_invalid_ports(self):
        with pytest.raises(ValueError, match="Test port must be between 1 and 65535"):
            validate_port(0, "Test port")

        with pytest.raises(ValueError, match="Test port must be between 1 and 65535"):
            validate_port(65536, "Test port")

    def test_non_integer_ports(self):
        with pytest.raises(ValueError):
            validate_port("80", "Port")  # type: ignore[arg-type]
        with pytest.raises(ValueError):
            validate_port(True, "Port")

    def test_port_constants(self):
        assert MIN_PORT == 1
        assert MAX_PORT == 65535


class TestValidateNonEmptyString:
    """Test blank-string rejection used for names and hosts."""

    def test_strips_value(self):
        assert validate_non_empty_string("  bastion  ", "Name") == "bastion"

    def test_rejects_blank(self):
        with pytest.raises(ValueError, match="Name cannot be empty"):
            validate_non_empty_string("   ", "Name")


class TestUrlHelpers:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("https://app.example.test:8443/health", "app.example.test"),
            ("http://app.example.test", "app.example.test"),
            ("app.example.test/path", "app.example.test"),
            ("db.internal:5432", "db.internal"),
            ("10.0.0.5", "10.0.0.5"),
            ("  db.internal  ", "db.internal"),
            ("[fd00::1]:80", "fd00::1"),
            ("https://[fd00::1]:8443/", "fd00::1"),
        ],
    )
    def test_strip_url_to_host(self, value, expected):
        assert strip_url_to_host(value) == expected

    def test_default_port_for_url(self):
        assert default_port_for_url("https://app.example.test") == 443
        assert default_port_for_url("http://app.example.test") == 80
        assert default_port_for_url("app.example.test") == 80

    def test_default_port_scheme_is_case_insensitive(self):
        assert default_port_for_url("HTTPS://app.example.test") == 443

    def test_default_port_prefers_explicit_port(self):
        assert default_port_for_url("http://app.example.test:8080") == 8080
        assert default_port_for_url("https://[fd00::1]:8443/health") == 8443
        assert default_port_for_url("db.internal:5432") == 5432

    def test_default_port_ignores_invalid_port(self):
        assert default_port_for_url("https://app.example.test:99999") == 443
        assert default_port_for_url("http://[fd00::1") == 80


class TestAgentParameterHelpers:
    def test_first_value_from_list(self):
        assert first_value({"portNumber": ["8080"]}, "portNumber") == "8080"

    def test_first_value_tolerates_scalar(self):
        assert first_value({"portNumber": 8080}, "portNumber") == "8080"

    def test_first_value_missing_or_empty(self):
        assert first_value({}, "host") is None
        assert first_value({"host": []}, "host") is None

    def test_parse_port(self):
        assert parse_port("5432") == 5432
        assert parse_port("0") is None
        assert parse_port("70000") is None
        assert parse_port("abc") is None
        assert parse_port(None) is None
