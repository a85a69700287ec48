from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

from dotenv import find_dotenv, load_dotenv

logger = logging.getLogger(__name__)

ENV_PREFIX = "SEMDOMAINS_"

DEFAULT_THRESHOLDS: Mapping[str, float] = MappingProxyType(
    {
        "human": 0.0,
        "stopword": 0.0,
        "cache": 0.90,
        "lexicon": 0.0,
        "morphology": 0.70,
        "dialectal": 0.70,
        "propagated": 0.50,
        "synonym": 0.60,
        "llm": 0.50,
    }
)


def get_config_paths() -> dict[str, Path]:
    """Return canonical on-disk locations for the store and env files."""

    project_root = Path(__file__).resolve().parents[3]
    data_dir = project_root / "data"

    return {
        "database": data_dir / "semdomains.sqlite3",
        "env": project_root / ".env",
        "env_local": project_root / ".env_local",
    }


def load_environment(env_file: str | os.PathLike[str] | None = None) -> list[str]:
    """Load classifier credentials and overrides from dotenv files.

    An explicit *env_file* must exist. Without one, ``.env`` and then
    ``.env_local`` are searched upwards from the working directory; the later
    file wins.
    """

    if env_file is not None:
        path = Path(env_file)
        if not path.is_file():
            raise FileNotFoundError(f"Environment file '{path}' does not exist")
        load_dotenv(path, override=True)
        return [str(path)]

    loaded: list[str] = []
    for name in (".env", ".env_local"):
        found = find_dotenv(name, usecwd=True)
        if found:
            load_dotenv(found, override=True)
            loaded.append(found)
    logger.debug("Loaded environment files", extra={"files": loaded})
    return loaded


@dataclass(frozen=True)
class ResolverSettings:
    """Tunable constants for resolution, propagation and batch pacing.

    The decay factors and hop limits have no derivation behind them beyond
    what worked on the lyrics corpus, so every value here can be overridden
    through ``SEMDOMAINS_*`` environment variables.
    """

    thresholds: Mapping[str, float] = field(default_factory=lambda: DEFAULT_THRESHOLDS)
    cache_ttl_seconds: float = 3600.0
    propagation_decay: float = 0.85
    inherit_decay: float = 0.80
    propagation_min_confidence: float = 0.50
    max_hops: int = 2
    max_derivation_depth: int = 2
    batch_delay_seconds: float = 2.0
    stalled_after_seconds: float = 15 * 60.0
    max_recovery_attempts: int = 3
    classifier_attempts: int = 3
    circuit_failure_threshold: int = 5
    circuit_reset_seconds: float = 60.0
    enable_synonym_tier: bool = False

    def threshold(self, tier: str) -> float:
        return float(self.thresholds.get(tier, 0.0))

    def with_threshold(self, tier: str, value: float) -> "ResolverSettings":
        merged = dict(self.thresholds)
        merged[tier] = float(value)
        return replace(self, thresholds=MappingProxyType(merged))

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ResolverSettings":
        env = os.environ if environ is None else environ
        defaults = cls()
        overrides: dict[str, object] = {}

        for name, caster in (
            ("cache_ttl_seconds", float),
            ("propagation_decay", float),
            ("inherit_decay", float),
            ("propagation_min_confidence", float),
            ("max_hops", int),
            ("max_derivation_depth", int),
            ("batch_delay_seconds", float),
            ("stalled_after_seconds", float),
            ("max_recovery_attempts", int),
            ("classifier_attempts", int),
            ("circuit_failure_threshold", int),
            ("circuit_reset_seconds", float),
        ):
            raw = env.get(ENV_PREFIX + name.upper())
            if raw is None or not raw.strip():
                continue
            try:
                overrides[name] = caster(raw)
            except ValueError as exc:
                raise ValueError(
                    f"Invalid value for {ENV_PREFIX}{name.upper()}: {raw!r}"
                ) from exc

        synonym_flag = env.get(ENV_PREFIX + "ENABLE_SYNONYM_TIER")
        if synonym_flag is not None:
            overrides["enable_synonym_tier"] = synonym_flag.strip().lower() in {
                "1",
                "true",
                "yes",
                "on",
            }

        thresholds = dict(defaults.thresholds)
        for tier in thresholds:
            raw = env.get(f"{ENV_PREFIX}THRESHOLD_{tier.upper()}")
            if raw is None or not raw.strip():
                continue
            try:
                thresholds[tier] = float(raw)
            except ValueError as exc:
                raise ValueError(f"Invalid threshold for tier {tier!r}: {raw!r}") from exc
        overrides["thresholds"] = MappingProxyType(thresholds)

        return replace(defaults, **overrides)
