"""Tiered semantic-domain resolution."""
from __future__ import annotations

from .cache import ClassificationCache
from .circuit import CircuitBreaker, CircuitOpenError, CircuitState
from .llm_classifier import (
    ClassifierError,
    ClassifierUnavailableError,
    GeminiDomainClassifier,
    MalformedResponseError,
)
from .models import Classification, ClassificationSource, Context, Resolution, Token
from .morphology import MorphologicalRuleMatcher
from .propagation import PropagatedLabel, SynonymGraph, SynonymPropagator

__all__ = [
    "CircuitBreaker",
    "CircuitOpenError",
    "CircuitState",
    "Classification",
    "ClassificationCache",
    "ClassificationSource",
    "ClassifierError",
    "ClassifierUnavailableError",
    "Context",
    "GeminiDomainClassifier",
    "MalformedResponseError",
    "MorphologicalRuleMatcher",
    "PropagatedLabel",
    "Resolution",
    "SynonymGraph",
    "SynonymPropagator",
    "Token",
]
