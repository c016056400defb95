import asyncio
import ipaddress

import pytest

from helpers import make_resolver
from webanalyzer.platform.utils.url_validator import (
    HostValidator,
    is_blocked_address,
    parse_ip,
    validate_url,
)


class TestValidateUrl:
    """Syntax-level URL checks."""

    def test_accepts_http_and_https(self):
        assert validate_url("https://example.com/path?q=1") == (True, "")
        assert validate_url("http://example.com") == (True, "")

    @pytest.mark.parametrize("url", ["", "   "])
    def test_rejects_empty(self, url):
        is_valid, error = validate_url(url)
        assert is_valid is False
        assert error == "URL cannot be empty"

    @pytest.mark.parametrize("url", ["ftp://example.com", "file:///etc/passwd", "javascript:alert(1)", "example.com"])
    def test_rejects_other_schemes(self, url):
        is_valid, error = validate_url(url)
        assert is_valid is False
        assert "Only http and https" in error

    def test_rejects_missing_host(self):
        is_valid, error = validate_url("https:///just-a-path")
        assert is_valid is False
        assert "missing host" in error

    def test_rejects_overlong_url(self):
        url = "https://example.com/" + "a" * 2000
        is_valid, error = validate_url(url)
        assert is_valid is False
        assert "too long" in error

    def test_length_limit_is_inclusive(self):
        url = "https://example.com/"
        url += "a" * (2000 - len(url))
        assert validate_url(url)[0] is True


class TestAddressClassification:

    @pytest.mark.parametrize("address", [
        "127.0.0.1", "10.1.2.3", "172.16.0.1", "172.31.255.255", "192.168.1.1",
        "169.254.169.254", "0.0.0.0", "224.0.0.1", "255.255.255.255",
        "::1", "::", "fc00::1", "fd12:3456::1", "fe80::1", "ff02::1",
        "::ffff:10.0.0.1", "::ffff:127.0.0.1",
    ])
    def test_blocked(self, address):
        assert is_blocked_address(ipaddress.ip_address(address)) is True

    @pytest.mark.parametrize("address", [
        "93.184.216.34", "8.8.8.8", "172.32.0.1", "1.1.1.1",
        "2606:4700:4700::1111", "::ffff:8.8.8.8",
    ])
    def test_public(self, address):
        assert is_blocked_address(ipaddress.ip_address(address)) is False

    def test_parse_ip_strips_brackets(self):
        assert parse_ip("[::1]") == ipaddress.ip_address("::1")
        assert parse_ip("example.com") is None


class TestHostValidator:

    @pytest.mark.asyncio
    async def test_public_literal_allowed_without_dns(self):
        async def resolver(hostname):
            raise AssertionError("IP literals must not be resolved")

        validator = HostValidator(resolver=resolver, enabled=True)
        result = await validator.validate("http://93.184.216.34/")
        assert result.allowed is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("url", [
        "http://127.0.0.1/admin",
        "http://10.0.0.5:8080/",
        "http://169.254.169.254/latest/meta-data/",
        "http://[::1]/",
        "http://[fe80::1]/",
    ])
    async def test_private_literals_rejected(self, url):
        validator = HostValidator(resolver=make_resolver(), enabled=True)
        result = await validator.validate(url)
        assert result.allowed is False
        assert result.reason == "URL host is a private or disallowed IP."

    @pytest.mark.asyncio
    async def test_public_hostname_allowed(self, validator):
        result = await validator.validate("https://example.com/")
        assert result.allowed is True
        assert result.reason is None

    @pytest.mark.asyncio
    async def test_hostname_with_any_private_address_rejected(self):
        resolver = make_resolver({"mixed.example": ["93.184.216.34", "10.0.0.7"]})
        validator = HostValidator(resolver=resolver, enabled=True)

        result = await validator.validate("https://mixed.example/")

        assert result.allowed is False
        assert result.reason == "URL host resolves to a private or disallowed IP."

    @pytest.mark.asyncio
    async def test_resolution_failure_fails_closed(self, validator):
        result = await validator.validate("https://does-not-exist.invalid/")
        assert result.allowed is False
        assert "Could not resolve host" in result.reason

    @pytest.mark.asyncio
    async def test_resolution_timeout_fails_closed(self):
        async def resolver(hostname):
            raise asyncio.TimeoutError()

        validator = HostValidator(resolver=resolver, enabled=True)
        result = await validator.validate("https://slow.example/")
        assert result.allowed is False

    @pytest.mark.asyncio
    async def test_empty_answer_fails_closed(self):
        validator = HostValidator(resolver=make_resolver({"empty.example": []}), enabled=True)
        result = await validator.validate("https://empty.example/")
        assert result.allowed is False

    @pytest.mark.asyncio
    async def test_malformed_url_rejected_before_dns(self, validator):
        result = await validator.validate("gopher://example.com")
        assert result.allowed is False
        assert "Only http and https" in result.reason

    @pytest.mark.asyncio
    async def test_disabled_validator_skips_host_checks(self):
        validator = HostValidator(resolver=make_resolver({}), enabled=False)
        result = await validator.validate("http://127.0.0.1/")
        assert result.allowed is True
