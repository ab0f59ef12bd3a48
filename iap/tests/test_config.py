import pytest
from pydantic import ValidationError

from iap.app.config import KNOWN_PLATFORMS, VerifierSettings


def test_defaults_enable_every_platform(monkeypatch):
    monkeypatch.delenv("IAP_ENABLED_PLATFORMS", raising=False)

    settings = VerifierSettings()

    assert settings.enabled_platforms == list(KNOWN_PLATFORMS)
    assert settings.http_timeout_seconds == 10.0
    assert settings.apple_shared_secret is None


def test_reads_prefixed_environment(monkeypatch):
    monkeypatch.setenv("IAP_APPLE_SHARED_SECRET", "s3cret")
    monkeypatch.setenv("IAP_AMAZON_SANDBOX", "true")
    monkeypatch.setenv("IAP_ENABLED_PLATFORMS", '["apple", "amazon"]')

    settings = VerifierSettings()

    assert settings.apple_shared_secret.get_secret_value() == "s3cret"
    assert settings.amazon_sandbox is True
    assert settings.enabled_platforms == ["apple", "amazon"]


def test_secrets_are_redacted_from_repr():
    settings = VerifierSettings(roku_developer_token="dev-token")

    assert "dev-token" not in repr(settings)


def test_rejects_unknown_platform():
    with pytest.raises(ValidationError, match="xbox"):
        VerifierSettings(enabled_platforms=["apple", "xbox"])


def test_rejects_non_positive_timeout():
    with pytest.raises(ValidationError):
        VerifierSettings(http_timeout_seconds=0)


def test_settings_are_frozen():
    settings = VerifierSettings()

    with pytest.raises(ValidationError):
        settings.amazon_sandbox = True


def test_vendor_endpoints_are_validated_urls(monkeypatch):
    monkeypatch.setenv("IAP_APPLE_SANDBOX_URL", "http://localhost:8080/verifyReceipt")

    settings = VerifierSettings()

    assert str(settings.apple_sandbox_url) == "http://localhost:8080/verifyReceipt"

    with pytest.raises(ValidationError):
        VerifierSettings(google_api_base_url="not a url")
