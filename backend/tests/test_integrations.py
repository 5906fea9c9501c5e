"""Tests for outbound integrations (Turnstile, Resend) and caller identification."""
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from app.auth.dependencies import is_trusted_origin, validate_admin_secret
from app.auth.keys import generate_api_key, key_prefix
from app.core.config import settings
from app.services.email_address import email_domain, is_valid_email_format
from app.services.mailer import send_api_key_email
from app.services.turnstile import verify_turnstile_token

ORIGINS = ["https://disposablecheck.irensaltali.com", "http://localhost:5173"]


def _client_posting(mock_client_cls, response=None, error=None):
    instance = AsyncMock()
    instance.post = AsyncMock(return_value=response, side_effect=error)
    instance.__aenter__ = AsyncMock(return_value=instance)
    instance.__aexit__ = AsyncMock(return_value=False)
    mock_client_cls.return_value = instance
    return instance


class TestTurnstile:
    @pytest.mark.asyncio
    async def test_success(self):
        response = MagicMock()
        response.json.return_value = {"success": True, "hostname": "disposablecheck.irensaltali.com"}

        with patch("app.services.turnstile.httpx.AsyncClient") as mock_client_cls:
            instance = _client_posting(mock_client_cls, response)
            result = await verify_turnstile_token("tok", "secret", "203.0.113.7")

        assert result.success is True
        assert result.hostname == "disposablecheck.irensaltali.com"
        form = instance.post.call_args.kwargs["data"]
        assert form == {"secret": "secret", "response": "tok", "remoteip": "203.0.113.7"}

    @pytest.mark.asyncio
    async def test_rejected_token(self):
        response = MagicMock()
        response.json.return_value = {"success": False, "error-codes": ["timeout-or-duplicate"]}

        with patch("app.services.turnstile.httpx.AsyncClient") as mock_client_cls:
            instance = _client_posting(mock_client_cls, response)
            result = await verify_turnstile_token("tok", "secret")

        assert result.success is False
        assert result.error_codes == ["timeout-or-duplicate"]
        assert "remoteip" not in instance.post.call_args.kwargs["data"]

    @pytest.mark.asyncio
    async def test_network_error(self):
        with patch("app.services.turnstile.httpx.AsyncClient") as mock_client_cls:
            _client_posting(mock_client_cls, error=httpx.ConnectError("down"))
            result = await verify_turnstile_token("tok", "secret")

        assert result.success is False
        assert result.error_codes == ["internal-error"]


class TestMailer:
    @pytest.mark.asyncio
    async def test_sends_key(self):
        with patch("app.services.mailer.httpx.AsyncClient") as mock_client_cls:
            instance = _client_posting(mock_client_cls, MagicMock(status_code=200))
            result = await send_api_key_email("dev@example.com", "dk_live_abc")

        assert result.success is True
        payload = instance.post.call_args.kwargs["json"]
        assert payload["to"] == ["dev@example.com"]
        assert "dk_live_abc" in payload["html"]
        headers = instance.post.call_args.kwargs["headers"]
        assert headers["Authorization"] == f"Bearer {settings.RESEND_API_KEY}"
        assert "1,000 requests/day" in payload["html"]

    @pytest.mark.asyncio
    async def test_quotes_given_daily_limit(self):
        with patch("app.services.mailer.httpx.AsyncClient") as mock_client_cls:
            instance = _client_posting(mock_client_cls, MagicMock(status_code=200))
            await send_api_key_email("dev@example.com", "dk_live_abc", daily_limit=2500)

        assert "2,500 requests/day" in instance.post.call_args.kwargs["json"]["html"]

    @pytest.mark.asyncio
    async def test_provider_error(self):
        with patch("app.services.mailer.httpx.AsyncClient") as mock_client_cls:
            _client_posting(mock_client_cls, MagicMock(status_code=422, text="invalid"))
            result = await send_api_key_email("dev@example.com", "dk_live_abc")

        assert result.success is False
        assert "422" in result.error

    @pytest.mark.asyncio
    async def test_not_configured(self):
        with patch.object(settings, "RESEND_API_KEY", ""), \
             patch("app.services.mailer.httpx.AsyncClient") as mock_client_cls:
            result = await send_api_key_email("dev@example.com", "dk_live_abc")

        assert result.success is False
        mock_client_cls.assert_not_called()


class TestAdminSecret:
    def test_match(self):
        assert validate_admin_secret("s3cret", "s3cret") is True

    def test_mismatch(self):
        assert validate_admin_secret("s3cret", "other") is False

    def test_empty_values(self):
        assert validate_admin_secret(None, "s3cret") is False
        assert validate_admin_secret("", "") is False


class TestTrustedOrigin:
    def test_origin(self):
        assert is_trusted_origin("http://localhost:5173", None, ORIGINS) is True

    def test_referer_prefix(self):
        assert is_trusted_origin(None, "https://disposablecheck.irensaltali.com/docs", ORIGINS) is True

    def test_untrusted(self):
        assert is_trusted_origin("https://evil.example", "https://evil.example/x", ORIGINS) is False
        assert is_trusted_origin(None, None, ORIGINS) is False


class TestHelpers:
    def test_api_key_shape(self):
        key = generate_api_key()
        assert key.startswith("dk_live_")
        assert len(key) == 40
        assert key_prefix(key) == key[:12]

    def test_email_format(self):
        assert is_valid_email_format("a@b.co") is True
        assert is_valid_email_format("a b@c.com") is False
        assert is_valid_email_format("a@localhost") is False

    def test_email_format_rejects_trailing_newline(self):
        assert is_valid_email_format("a@mailinator.com\n") is False
        assert is_valid_email_format("\na@mailinator.com") is False

    def test_email_domain(self):
        assert email_domain("User@Example.COM") == "example.com"
        assert email_domain("no-at-sign") == ""
