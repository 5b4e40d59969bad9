"""Capability providers and the provider registry."""

from .base import (
    CapabilityProvider,
    FunctionProvider,
    NullProvider,
    normalize_output,
)
from .registry import ProviderRegistry, ProviderStats

__all__ = [
    "CapabilityProvider",
    "FunctionProvider",
    "NullProvider",
    "ProviderRegistry",
    "ProviderStats",
    "normalize_output",
]
