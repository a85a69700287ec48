"""External LLM classifier, the resolver's tier of last resort.

Talks to an OpenAI-compatible chat-completions gateway (Gemini Flash in
production). Transient failures are retried with exponential backoff through
``tenacity``; repeated failures trip a :class:`CircuitBreaker` so a dead
gateway does not stall a batch. Every failure surfaces as a
:class:`ClassifierError` subclass, which the resolver turns into a tier miss.
"""
from __future__ import annotations

import json
import logging
import os
import re
from typing import Any, Callable

import httpx
import openai
from openai import OpenAI
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from semdomains.common.config import ResolverSettings
from semdomains.taxonomy import DomainTaxonomy, TaxonomyError

from .circuit import CircuitBreaker, CircuitOpenError
from .models import Classification, ClassificationSource, Context, Token

logging.getLogger("openai").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "google/gemini-2.5-flash"
API_BASE_ENV = "CLASSIFIER_API_BASE"
API_KEY_ENV = "CLASSIFIER_API_KEY"
MODEL_ENV = "CLASSIFIER_MODEL_NAME"

SYSTEM_PROMPT = (
    "Você é um classificador semântico preciso de letras de música gaúcha. "
    "Retorne APENAS JSON válido."
)

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    openai.RateLimitError,
    openai.APITimeoutError,
    openai.APIConnectionError,
    httpx.TimeoutException,
)

_JSON_BLOCK_RE = re.compile(r"\{[\s\S]*\}")


class ClassifierError(RuntimeError):
    """Base class for external classifier failures."""


class ClassifierUnavailableError(ClassifierError):
    """Timeouts, rate limits or an open circuit after bounded retries."""


class MalformedResponseError(ClassifierError):
    """The model answered, but not with a usable classification."""


class GeminiDomainClassifier:
    def __init__(
        self,
        *,
        taxonomy: DomainTaxonomy,
        client: Any,
        model: str = DEFAULT_MODEL,
        attempts: int = 3,
        retry_wait: Callable[[RetryCallState], float] | None = None,
        breaker: CircuitBreaker | None = None,
        temperature: float = 0.3,
        max_tokens: int = 200,
    ) -> None:
        self.taxonomy = taxonomy
        self.client = client
        self.model = model
        self.attempts = max(1, int(attempts))
        self.retry_wait = retry_wait or wait_exponential(multiplier=1, min=2, max=30)
        self.breaker = breaker or CircuitBreaker()
        self.temperature = temperature
        self.max_tokens = max_tokens

    @classmethod
    def from_env(
        cls,
        *,
        taxonomy: DomainTaxonomy,
        settings: ResolverSettings | None = None,
    ) -> "GeminiDomainClassifier":
        settings = settings or ResolverSettings()
        base_url = os.getenv(API_BASE_ENV, "").strip()
        api_key = os.getenv(API_KEY_ENV, "").strip()
        if not base_url or not api_key:
            raise ClassifierUnavailableError(
                f"{API_BASE_ENV} and {API_KEY_ENV} must be set to use the external classifier"
            )
        if not base_url.rstrip("/").endswith("/v1"):
            base_url = f"{base_url.rstrip('/')}/v1"

        client = OpenAI(
            base_url=base_url,
            api_key=api_key,
            timeout=httpx.Timeout(30.0, read=30.0, write=10.0, connect=5.0),
            max_retries=0,
        )
        return cls(
            taxonomy=taxonomy,
            client=client,
            model=os.getenv(MODEL_ENV, DEFAULT_MODEL).strip() or DEFAULT_MODEL,
            attempts=settings.classifier_attempts,
            breaker=CircuitBreaker(
                failure_threshold=settings.circuit_failure_threshold,
                reset_timeout=settings.circuit_reset_seconds,
            ),
        )

    def classify(self, token: Token, context: Context) -> Classification:
        prompt = build_prompt(token, context, self.taxonomy)
        try:
            content = self.breaker.call(lambda: self._complete_with_retry(prompt))
        except CircuitOpenError as exc:
            raise ClassifierUnavailableError(str(exc)) from exc
        except TRANSIENT_ERRORS as exc:
            raise ClassifierUnavailableError(
                f"External classifier unavailable after {self.attempts} attempt(s): {exc}"
            ) from exc
        except openai.OpenAIError as exc:
            raise ClassifierError(f"External classifier request failed: {exc}") from exc

        result = parse_response(content, self.taxonomy)
        logger.info(
            "External classification complete",
            extra={"token": token.normalized, "domain": result.domain_code, "confidence": result.confidence},
        )
        return result

    def _complete_with_retry(self, prompt: str) -> str:
        retrying = Retrying(
            reraise=True,
            stop=stop_after_attempt(self.attempts),
            wait=self.retry_wait,
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            before_sleep=_log_retry,
        )
        return retrying(self._complete, prompt)

    def _complete(self, prompt: str) -> str:
        completion = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        try:
            content = completion.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as exc:
            raise MalformedResponseError("Completion carried no message content") from exc
        return content or ""


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "External classifier call failed; retrying",
        extra={"attempt": retry_state.attempt_number, "error": repr(exc)},
    )


def build_prompt(token: Token, context: Context, taxonomy: DomainTaxonomy) -> str:
    domain_lines = [
        f"- {node.code} ({node.name})"
        for node in sorted(taxonomy, key=lambda node: node.code)
        if node.level <= 2
    ]
    schema_block = json.dumps(
        {
            "domain_code": "XX.YY",
            "confidence": 0.95,
            "justification": "<breve explicação contextual>",
        },
        ensure_ascii=False,
    )
    lines = [
        "Classifique a palavra em destaque em um dos domínios semânticos abaixo.",
        "DOMÍNIOS:",
        *domain_lines,
        "CONTEXTO:",
        f'Sentença: "{context.sentence(token)}"',
        f'Palavra: "{token.surface}"',
        f'Lema: "{token.lemma or token.normalized}"',
        f"POS: {token.pos or 'UNKNOWN'}",
        "Use o código mais específico que o contexto sustentar.",
        "Retorne APENAS um JSON válido no formato:",
        schema_block,
    ]
    return "\n".join(lines)


def parse_response(content: str, taxonomy: DomainTaxonomy) -> Classification:
    """Turn the model's reply into a classification or raise MalformedResponseError."""

    match = _JSON_BLOCK_RE.search(content or "")
    if not match:
        raise MalformedResponseError("Response carried no JSON object")
    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise MalformedResponseError(f"Response JSON did not parse: {exc}") from exc
    if not isinstance(payload, dict):
        raise MalformedResponseError("Response JSON is not an object")

    raw_code = payload.get("domain_code") or payload.get("tagset_codigo")
    raw_confidence = payload.get("confidence", payload.get("confianca"))
    if not isinstance(raw_code, str) or not raw_code.strip():
        raise MalformedResponseError("Response is missing domain_code")
    if isinstance(raw_confidence, bool) or not isinstance(raw_confidence, (int, float)):
        raise MalformedResponseError("Response confidence is not numeric")

    try:
        code = taxonomy.require(raw_code)
    except TaxonomyError as exc:
        raise MalformedResponseError(str(exc)) from exc

    justification = payload.get("justification") or payload.get("justificativa")
    return Classification(
        domain_code=code,
        confidence=float(raw_confidence),
        source=ClassificationSource.LLM,
        justification=justification if isinstance(justification, str) else None,
    )
