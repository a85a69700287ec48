import os

import pytest

from semdomains.common.config import ResolverSettings, get_config_paths, load_environment


def test_defaults():
    settings = ResolverSettings()

    assert settings.threshold("cache") == pytest.approx(0.90)
    assert settings.threshold("morphology") == pytest.approx(0.70)
    assert settings.threshold("llm") == pytest.approx(0.50)
    assert settings.propagation_decay == pytest.approx(0.85)
    assert settings.batch_delay_seconds == pytest.approx(2.0)
    assert settings.stalled_after_seconds == pytest.approx(900)
    assert settings.enable_synonym_tier is False


def test_from_env_overrides():
    settings = ResolverSettings.from_env(
        {
            "SEMDOMAINS_MAX_HOPS": "3",
            "SEMDOMAINS_BATCH_DELAY_SECONDS": "0.5",
            "SEMDOMAINS_THRESHOLD_LLM": "0.6",
            "SEMDOMAINS_ENABLE_SYNONYM_TIER": "yes",
        }
    )

    assert settings.max_hops == 3
    assert settings.batch_delay_seconds == pytest.approx(0.5)
    assert settings.threshold("llm") == pytest.approx(0.6)
    assert settings.threshold("cache") == pytest.approx(0.90)
    assert settings.enable_synonym_tier is True


@pytest.mark.parametrize(
    "env",
    [{"SEMDOMAINS_MAX_HOPS": "two"}, {"SEMDOMAINS_THRESHOLD_CACHE": "high"}],
)
def test_from_env_rejects_unparsable_values(env):
    with pytest.raises(ValueError):
        ResolverSettings.from_env(env)


def test_with_threshold_returns_a_copy():
    base = ResolverSettings()
    changed = base.with_threshold("dialectal", 0.9)

    assert changed.threshold("dialectal") == pytest.approx(0.9)
    assert base.threshold("dialectal") == pytest.approx(0.70)


def test_load_environment_explicit_file(tmp_path, monkeypatch):
    env_file = tmp_path / "custom.env"
    env_file.write_text("CLASSIFIER_MODEL_NAME=google/gemini-test\n", encoding="utf-8")
    monkeypatch.delenv("CLASSIFIER_MODEL_NAME", raising=False)

    loaded = load_environment(env_file)

    assert loaded == [str(env_file)]
    assert os.environ["CLASSIFIER_MODEL_NAME"] == "google/gemini-test"
    monkeypatch.delenv("CLASSIFIER_MODEL_NAME")


def test_load_environment_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_environment(tmp_path / "missing.env")


def test_config_paths():
    paths = get_config_paths()
    assert paths["database"].name == "semdomains.sqlite3"
    assert paths["database"].parent.name == "data"
