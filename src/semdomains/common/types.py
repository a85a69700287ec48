"""Shared protocols for the semantic-domain toolchain.

The resolver only depends on these narrow interfaces, so tests and
alternative backends can plug in without inheriting from concrete classes.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from semdomains.resolution.models import Classification, Context, Token


@runtime_checkable
class ResolutionTier(Protocol):
    """One stage of the prioritized resolution chain."""

    name: str

    def attempt(self, token: "Token", context: "Context") -> "Classification | None":
        """Return a confident classification, or ``None`` to pass to the next tier."""
        ...


@runtime_checkable
class ExternalClassifier(Protocol):
    """Opaque classifier of last resort (an LLM behind an HTTP gateway).

    Implementations raise ``ClassifierError`` subclasses on timeouts, rate
    limits and malformed responses.
    """

    def classify(self, token: "Token", context: "Context") -> "Classification":
        ...


__all__ = [
    "ExternalClassifier",
    "ResolutionTier",
]
