"""Validated request/acknowledgement models for the external interfaces."""
from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from semdomains.utils.text import normalize_token


class ClassificationRequest(BaseModel):
    word: str
    left: str = ""
    right: str = ""
    pos: Optional[str] = None
    lemma: Optional[str] = None

    @field_validator("word", mode="after")
    def check_word(cls, v: str) -> str:
        if not normalize_token(v):
            raise ValueError("word must contain at least one letter or digit")
        return v


class BatchSeedRequest(BaseModel):
    limit: int = Field(default=50, ge=1)
    offset: int = Field(default=0, ge=0)
    job_id: Optional[str] = None


class ValidationOverride(BaseModel):
    token: str
    domain_code: str
    justification: str
    scope: Literal["occurrence", "all"] = "occurrence"
    left: str = ""
    right: str = ""

    @field_validator("token", mode="before")
    def normalize_word(cls, v: str) -> str:
        normalized = normalize_token(v)
        if not normalized:
            raise ValueError("token must not be empty")
        return normalized

    @field_validator("domain_code", mode="before")
    def upper_code(cls, v: str) -> str:
        return (v or "").strip().upper()

    @field_validator("justification", mode="after")
    def require_justification(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("justification must not be empty")
        return v.strip()


class ValidationAck(BaseModel):
    token: str
    domain_code: str
    scope: Literal["occurrence", "all"]
    context_hash: str
    replaced_entries: int = 0
    audit_id: int


__all__ = [
    "BatchSeedRequest",
    "ClassificationRequest",
    "ValidationAck",
    "ValidationOverride",
]
