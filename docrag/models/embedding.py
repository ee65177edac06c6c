"""Wire models for the Gemini ``embedContent`` endpoint.

Request::

    {"model": "models/text-embedding-004",
     "content": {"parts": [{"text": "..."}]}}

Response::

    {"embedding": {"values": [0.01, -0.02, ...]}}
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class GeminiPart(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str


class GeminiContent(BaseModel):
    model_config = ConfigDict(frozen=True)

    parts: list[GeminiPart]


class GeminiEmbedRequest(BaseModel):
    """Body of ``POST /models/{model}:embedContent``."""

    model_config = ConfigDict(frozen=True)

    model: str
    content: GeminiContent

    @classmethod
    def for_text(cls, model: str, text: str) -> GeminiEmbedRequest:
        return cls(
            model=f"models/{model}",
            content=GeminiContent(parts=[GeminiPart(text=text)]),
        )


class GeminiEmbedding(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    values: list[float] = Field(default_factory=list)


class GeminiEmbedResponse(BaseModel):
    """Response of ``embedContent``; unknown fields are ignored."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    embedding: GeminiEmbedding
