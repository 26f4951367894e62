"""Bot (chatbot) aggregate: settings, training counters, usage analytics.

``BotSettings`` is the validated, fully defaulted configuration the answer
composer reads.  Bots created without settings get the defaults below, and
partial updates are merged over the current values, so no caller ever has
to check whether a field is present.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_MODEL = "gpt-3.5-turbo"
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 2000

DEFAULT_SYSTEM_MESSAGE = (
    "You are a helpful AI assistant. For greetings like 'hi', 'hello', 'hey', "
    "respond naturally and briefly like 'Hi! How can I help you today?' or "
    "'Hello! What can I assist you with?'\n\n"
    "For all other queries, you should:\n"
    "1. Use the provided context to give accurate answers\n"
    "2. If you cannot find the answer in the context, say so\n"
    "3. Follow the response format requirements as specified"
)

DEFAULT_PROMPT_TEMPLATE = (
    "Context: {context}\n\n"
    "Previous conversation:\n{conversationHistory}\n\n"
    "User: {question}"
)


class BotSettings(BaseModel):
    """Per-bot language-model and prompt configuration."""

    model_config = ConfigDict(frozen=True)

    model: str = Field(default=DEFAULT_MODEL, min_length=1)
    temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=0.0, le=2.0)
    max_tokens: int = Field(default=DEFAULT_MAX_TOKENS, gt=0)
    system_message: str = Field(default=DEFAULT_SYSTEM_MESSAGE)
    prompt_template: str = Field(default=DEFAULT_PROMPT_TEMPLATE)

    @field_validator("system_message", mode="before")
    @classmethod
    def _default_blank_system_message(cls, value: object) -> object:
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_SYSTEM_MESSAGE
        return value

    @field_validator("prompt_template", mode="before")
    @classmethod
    def _check_template(cls, value: object) -> object:
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_PROMPT_TEMPLATE
        if isinstance(value, str) and "{question}" not in value:
            raise ValueError("prompt_template must contain a {question} placeholder")
        return value


class TrainingSummary(BaseModel):
    """Cached aggregate counters, recomputed whenever training data changes."""

    model_config = ConfigDict(frozen=True)

    total_documents: int = Field(default=0, ge=0, description="Completed documents.")
    total_websites: int = Field(default=0, ge=0, description="Completed website crawls.")
    total_chunks: int = Field(default=0, ge=0, description="Chunks across completed records.")
    last_training_date: datetime | None = None


class BotAnalytics(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_messages: int = Field(default=0, ge=0)
    last_active: datetime | None = None


class Bot(BaseModel):
    """Aggregate root owning documents, crawls and settings."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    name: str = Field(min_length=1)
    settings: BotSettings = Field(default_factory=BotSettings)
    training: TrainingSummary = Field(default_factory=TrainingSummary)
    analytics: BotAnalytics = Field(default_factory=BotAnalytics)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc)  # noqa: UP017
    )
