"""Shared infrastructure for the semantic-domain toolchain."""

from __future__ import annotations

from .config import ResolverSettings, get_config_paths, load_environment
from .types import ExternalClassifier, ResolutionTier

__all__ = [
    "ExternalClassifier",
    "ResolutionTier",
    "ResolverSettings",
    "get_config_paths",
    "load_environment",
]
