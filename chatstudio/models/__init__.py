"""Data models for chatstudio."""

from chatstudio.models.provider import Capability, Dialect, ProviderDescriptor
from chatstudio.models.request import (
    Attachment,
    CanonicalResult,
    GenerationRequest,
    ImageRequest,
)
from chatstudio.models.session import SessionHistory, Turn

__all__ = [
    "Attachment",
    "CanonicalResult",
    "Capability",
    "Dialect",
    "GenerationRequest",
    "ImageRequest",
    "ProviderDescriptor",
    "SessionHistory",
    "Turn",
]
