"""Chat models: conversation turns, answer sources and composed answers."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ConversationTurn(BaseModel):
    """One message in a chat session, used as short-term context."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc)  # noqa: UP017
    )


class SourceReference(BaseModel):
    """A retrieved chunk surfaced alongside an answer."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(description="Full chunk text as stored.")
    preview: str = Field(description="Short prefix of the text for display.")
    score: float = Field(description="Similarity score reported by the vector store.")
    metadata: dict[str, Any] = Field(default_factory=dict)


class ChatAnswer(BaseModel):
    """The composer's result: answer text plus its ordered sources.

    ``short_circuit`` is set when the answer was produced without calling
    the language model.
    """

    model_config = ConfigDict(frozen=True)

    text: str
    sources: list[SourceReference] = Field(default_factory=list)
    short_circuit: Literal["not_trained", "no_matches"] | None = None
