"""
Engine registry.

Maps a platform identifier to the verification engine that serves it.
The registry is built once by the composition root and is read-only
afterwards; adding a platform means registering another engine, never
touching the dispatcher.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

import httpx

from iap.app.config import VerifierSettings
from iap.app.engines import ENGINE_TYPES, VerificationEngine


class EngineRegistry:
    """
    Immutable PlatformId -> VerificationEngine lookup.

    Lookup failure is not an error here; the dispatcher turns an absent
    engine into UnknownPlatformError.
    """

    def __init__(self, engines: Mapping[str, VerificationEngine]) -> None:
        for platform, engine in engines.items():
            if not isinstance(engine, VerificationEngine):
                raise TypeError(
                    f"Engine registered for '{platform}' does not implement "
                    "supports() and verify_payment()"
                )
        self._engines: Mapping[str, VerificationEngine] = MappingProxyType(
            dict(engines)
        )

    def resolve(self, platform: object) -> Optional[VerificationEngine]:
        if not isinstance(platform, str):
            return None
        return self._engines.get(platform)

    def platforms(self) -> Tuple[str, ...]:
        return tuple(sorted(self._engines))

    def with_engine(
        self, platform: str, engine: VerificationEngine
    ) -> "EngineRegistry":
        """
        Return a new registry with ``engine`` registered for ``platform``.

        The receiver is left unchanged.
        """
        engines: Dict[str, VerificationEngine] = dict(self._engines)
        engines[platform] = engine
        return EngineRegistry(engines)

    def __contains__(self, platform: object) -> bool:
        return self.resolve(platform) is not None

    def __len__(self) -> int:
        return len(self._engines)


def build_default_registry(
    settings: VerifierSettings,
    client: httpx.AsyncClient,
) -> EngineRegistry:
    """
    Register the bundled engine for every enabled platform.

    All engines share ``client``.
    """
    return EngineRegistry(
        {
            platform: ENGINE_TYPES[platform](client, settings)
            for platform in settings.enabled_platforms
        }
    )
