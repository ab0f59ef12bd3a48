from .base import StorefrontEngine, VerificationEngine
from .amazon import AmazonEngine
from .apple import AppleEngine
from .google import GoogleEngine
from .roku import RokuEngine

ENGINE_TYPES = {
    AmazonEngine.PLATFORM: AmazonEngine,
    AppleEngine.PLATFORM: AppleEngine,
    GoogleEngine.PLATFORM: GoogleEngine,
    RokuEngine.PLATFORM: RokuEngine,
}

__all__ = [
    "VerificationEngine",
    "StorefrontEngine",
    "AmazonEngine",
    "AppleEngine",
    "GoogleEngine",
    "RokuEngine",
    "ENGINE_TYPES",
]
