from types import SimpleNamespace

import httpx
import pytest
from tenacity import wait_none

from semdomains.resolution.circuit import CircuitBreaker
from semdomains.resolution.llm_classifier import (
    ClassifierUnavailableError,
    GeminiDomainClassifier,
    MalformedResponseError,
    build_prompt,
    parse_response,
)
from semdomains.resolution.models import ClassificationSource, Context, Token
from semdomains.taxonomy import default_taxonomy


class FakeCompletions:
    def __init__(self, replies):
        self.replies = list(replies)
        self.calls: list[dict] = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, BaseException):
            raise reply
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=reply))])


def _classifier(replies, **kwargs):
    completions = FakeCompletions(replies)
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    kwargs.setdefault("retry_wait", wait_none())
    classifier = GeminiDomainClassifier(taxonomy=default_taxonomy(), client=client, **kwargs)
    return classifier, completions


TOKEN = Token.from_surface("Querência")
CONTEXT = Context("volto pra minha", "amada")

GOOD_REPLY = (
    "```json\n"
    '{"domain_code": "na.ge", "confidence": 0.88, "justification": "Terra natal"}\n'
    "```"
)


def test_parses_fenced_json_reply():
    classifier, completions = _classifier([GOOD_REPLY])

    result = classifier.classify(TOKEN, CONTEXT)

    assert result.domain_code == "NA.GE"
    assert result.confidence == pytest.approx(0.88)
    assert result.source is ClassificationSource.LLM
    assert result.justification == "Terra natal"
    assert completions.calls[0]["temperature"] == 0.3
    assert completions.calls[0]["model"] == "google/gemini-2.5-flash"


def test_transient_timeouts_are_retried():
    classifier, completions = _classifier(
        [httpx.ReadTimeout("slow"), httpx.ReadTimeout("slow"), GOOD_REPLY]
    )

    assert classifier.classify(TOKEN, CONTEXT).domain_code == "NA.GE"
    assert len(completions.calls) == 3


def test_exhausted_retries_raise_unavailable():
    classifier, completions = _classifier([httpx.ReadTimeout("slow")], attempts=3)

    with pytest.raises(ClassifierUnavailableError):
        classifier.classify(TOKEN, CONTEXT)
    assert len(completions.calls) == 3


@pytest.mark.parametrize(
    "reply",
    [
        "sem json aqui",
        '{"domain_code": "NA.GE"}',
        '{"domain_code": "XX.YY", "confidence": 0.9}',
        '{"domain_code": "NA.GE", "confidence": "alta"}',
        "{not json}",
    ],
)
def test_malformed_replies_raise(reply):
    with pytest.raises(MalformedResponseError):
        parse_response(reply, default_taxonomy())


def test_confidence_is_clamped():
    result = parse_response('{"domain_code": "SE", "confidence": 1.7}', default_taxonomy())
    assert result.confidence == 1.0


def test_circuit_opens_and_short_circuits_calls(clock):
    breaker = CircuitBreaker(failure_threshold=2, reset_timeout=60, clock=clock)
    classifier, completions = _classifier([httpx.ConnectTimeout("down")], attempts=1, breaker=breaker)

    for _ in range(2):
        with pytest.raises(ClassifierUnavailableError):
            classifier.classify(TOKEN, CONTEXT)
    with pytest.raises(ClassifierUnavailableError, match="Circuit breaker open"):
        classifier.classify(TOKEN, CONTEXT)

    assert len(completions.calls) == 2


def test_prompt_lists_upper_levels_and_emphasises_token():
    prompt = build_prompt(TOKEN, CONTEXT, default_taxonomy())

    assert "- NA.FA (Fauna)" in prompt
    assert "- NA.FA.01" not in prompt
    assert "volto pra minha **Querência** amada" in prompt


def test_from_env_requires_credentials(monkeypatch):
    monkeypatch.delenv("CLASSIFIER_API_BASE", raising=False)
    monkeypatch.delenv("CLASSIFIER_API_KEY", raising=False)

    with pytest.raises(ClassifierUnavailableError):
        GeminiDomainClassifier.from_env(taxonomy=default_taxonomy())


def test_from_env_appends_api_version(monkeypatch):
    monkeypatch.setenv("CLASSIFIER_API_BASE", "https://gateway.example")
    monkeypatch.setenv("CLASSIFIER_API_KEY", "test-key")
    monkeypatch.setenv("CLASSIFIER_MODEL_NAME", "google/gemini-2.5-pro")

    classifier = GeminiDomainClassifier.from_env(taxonomy=default_taxonomy())

    assert str(classifier.client.base_url).rstrip("/").endswith("/v1")
    assert classifier.model == "google/gemini-2.5-pro"
