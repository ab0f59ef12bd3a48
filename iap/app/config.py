"""
Runtime configuration for the receipt verification dispatcher.

Pydantic v2 settings parsed once from the environment (``IAP_`` prefix).
Vendor credentials are held as SecretStr so they never leak into logs or
reprs. Configuration only decides which engines are registered and how
they reach their vendor APIs; it never influences dispatch semantics.
"""

from functools import lru_cache
from typing import Annotated, List, Optional

from pydantic import AnyHttpUrl, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


KNOWN_PLATFORMS = ("amazon", "apple", "google", "roku")


SensitiveEnv = Annotated[
    Optional[SecretStr],
    Field(default=None, description="Vendor credential, redacted from logs"),
]


class VerifierSettings(BaseSettings):
    """
    Application settings parsed from the environment.

    Missing credentials are not fatal at startup: an engine only fails
    (with PlatformConfigurationError) when an operation actually needs one.
    """

    # ---------------------------------------------------------------------
    # Registry composition
    # ---------------------------------------------------------------------

    enabled_platforms: Annotated[
        List[str],
        Field(
            default_factory=lambda: list(KNOWN_PLATFORMS),
            description="Platforms registered by the composition root",
        ),
    ]

    # ---------------------------------------------------------------------
    # Apple App Store
    # ---------------------------------------------------------------------

    apple_shared_secret: SensitiveEnv
    apple_production_url: Annotated[
        AnyHttpUrl,
        Field(
            default="https://buy.itunes.apple.com/verifyReceipt",
            description="App Store verifyReceipt production endpoint",
        ),
    ]
    apple_sandbox_url: Annotated[
        AnyHttpUrl,
        Field(
            default="https://sandbox.itunes.apple.com/verifyReceipt",
            description="App Store verifyReceipt sandbox endpoint",
        ),
    ]

    # ---------------------------------------------------------------------
    # Google Play
    # ---------------------------------------------------------------------

    google_access_token: SensitiveEnv
    google_api_base_url: Annotated[
        AnyHttpUrl,
        Field(
            default="https://androidpublisher.googleapis.com/androidpublisher/v3",
            description="Android Publisher API v3 base URL",
        ),
    ]

    # ---------------------------------------------------------------------
    # Amazon Appstore (RVS)
    # ---------------------------------------------------------------------

    amazon_shared_secret: SensitiveEnv
    amazon_sandbox: bool = False

    # ---------------------------------------------------------------------
    # Roku Pay
    # ---------------------------------------------------------------------

    roku_developer_token: SensitiveEnv

    # ---------------------------------------------------------------------
    # Network egress
    # ---------------------------------------------------------------------

    http_timeout_seconds: Annotated[
        float,
        Field(
            default=10.0,
            gt=0,
            description="Timeout applied to every outbound vendor request",
        ),
    ]

    @field_validator("enabled_platforms")
    @classmethod
    def validate_enabled_platforms(cls, v: List[str]) -> List[str]:
        unknown = sorted(set(v) - set(KNOWN_PLATFORMS))
        if unknown:
            raise ValueError(
                f"Unsupported platform(s) {unknown}. "
                f"Allowed values: {list(KNOWN_PLATFORMS)}"
            )
        return v

    model_config = SettingsConfigDict(
        env_prefix="IAP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> VerifierSettings:
    """
    Process-wide settings singleton.
    """
    return VerifierSettings()
