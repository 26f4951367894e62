"""Retrieval-augmented answer composition for one bot.

Given a bot, a user question and the recent conversation, the composer
retrieves the bot's most relevant chunks from the shared vector index and
asks the bot's language model for an answer grounded in them.

Architecture overview
---------------------
  1. TRAINED CHECK -- ``stats({"chatbotId": bot.id})``.  A bot with no
                      vectors gets a fixed "not trained" reply; nothing
                      is embedded and no model is called.
  2. EMBED         -- The question becomes a query vector.
  3. RETRIEVE      -- ``query(vector, {"chatbotId": bot.id}, top_k)`` with
                      ``top_k = min(3, vector_count)``.  No matches gives a
                      fixed "no relevant information" reply, again without
                      a model call.
  4. GUARD         -- Any match owned by another bot is dropped and logged
                      as a tenant-isolation violation.
  5. PROMPT        -- Matched texts (best first, blank-line separated) fill
                      ``{context}``; the last turns, one ``role: content``
                      line each, fill ``{conversationHistory}``.
  6. GENERATE      -- Batch mode returns the full reply.  Streaming mode
                      hands every token to ``on_token`` as it arrives and
                      accumulates the same text.
  7. ANALYTICS     -- The bot's message counter and last-active time are
                      bumped.  A failure here is logged and ignored.

Retrieval order is kept as-is in ``sources``; there is no re-ranking.
Vector-store and model failures propagate to the caller.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Sequence

import structlog

from src.interfaces.document_store import IDocumentStore
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ChatMessage, ILLMProvider
from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.bot import Bot
from src.models.chat import ChatAnswer, ConversationTurn, SourceReference
from src.models.rag import META_CHATBOT_ID, QueryMatch
from src.services.llm_client_cache import LLMClientCache
from src.utils.errors import TenantIsolationViolation
from src.utils.logging import get_logger

logger: structlog.BoundLogger = get_logger(__name__)

NOT_TRAINED_MESSAGE = (
    "This chatbot needs to be trained before it can be used. "
    "Please train the chatbot with some data first."
)
NO_MATCHES_MESSAGE = (
    "I apologize, but I don't have enough relevant information in my "
    "knowledge base to answer your question accurately."
)

_PREVIEW_LENGTH = 100

# Receives each streamed token; may be a plain function or a coroutine function.
TokenSink = Callable[[str], "Awaitable[None] | None"]


def format_history(history: Sequence[ConversationTurn], limit: int = 3) -> str:
    """Render the last *limit* turns as ``role: content`` lines."""
    if limit <= 0:
        return ""
    return "\n".join(f"{turn.role}: {turn.content}" for turn in list(history)[-limit:])


def fill_template(template: str, context: str, history: str, question: str) -> str:
    """Substitute the three prompt placeholders.

    Plain replacement, so literal braces elsewhere in a bot's template are
    left untouched.
    """
    return (
        template.replace("{context}", context)
        .replace("{conversationHistory}", history)
        .replace("{question}", question)
    )


def preview(text: str, length: int = _PREVIEW_LENGTH) -> str:
    return text if len(text) <= length else text[:length] + "..."


class AnswerComposer:
    """Answers questions for a bot from its own training data.

    Parameters
    ----------
    embedding_provider:
        Embeds the question.
    vector_store:
        Shared vector index, always queried with the bot's ``chatbotId``.
    llm_cache:
        Supplies the language-model client matching the bot's settings.
    document_store:
        Receives the best-effort message-count update.
    top_k, history_turns:
        Retrieval depth and number of past turns included in the prompt.
    not_trained_message, no_matches_message:
        Fixed replies returned without calling the model.
    """

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        vector_store: IVectorStoreProvider,
        llm_cache: LLMClientCache,
        document_store: IDocumentStore | None = None,
        top_k: int = 3,
        history_turns: int = 3,
        not_trained_message: str = NOT_TRAINED_MESSAGE,
        no_matches_message: str = NO_MATCHES_MESSAGE,
    ) -> None:
        self._embedding_provider = embedding_provider
        self._vector_store = vector_store
        self._llm_cache = llm_cache
        self._document_store = document_store
        self._top_k = top_k
        self._history_turns = history_turns
        self._not_trained_message = not_trained_message
        self._no_matches_message = no_matches_message

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def answer(
        self,
        bot: Bot,
        question: str,
        history: Sequence[ConversationTurn] = (),
        on_token: TokenSink | None = None,
    ) -> ChatAnswer:
        """Compose an answer to *question* for *bot*.

        When *on_token* is given the model is streamed and every token is
        passed to it in arrival order; the returned ``text`` is their
        concatenation.

        Raises
        ------
        src.utils.errors.VectorStoreError
            If the stats or query call fails.
        src.utils.errors.EmbeddingServiceError
            If the question cannot be embedded.
        src.utils.errors.LLMError
            If the model call fails.
        """
        tenant_filter = {META_CHATBOT_ID: bot.id}

        stats = await self._vector_store.stats(tenant_filter)
        if stats.vector_count == 0:
            logger.info("answer_not_trained", bot_id=bot.id)
            return ChatAnswer(text=self._not_trained_message, short_circuit="not_trained")

        query_vector = await self._embedding_provider.embed_single(question)
        top_k = min(self._top_k, stats.vector_count)
        matches = await self._vector_store.query(query_vector, tenant_filter, top_k)
        matches = self._discard_foreign(bot.id, matches)
        if not matches:
            logger.info("answer_no_matches", bot_id=bot.id, top_k=top_k)
            return ChatAnswer(text=self._no_matches_message, short_circuit="no_matches")

        messages = self.build_messages(bot, question, matches, history)
        llm = self._llm_cache.get(bot.settings)

        if on_token is None:
            text = await llm.complete(messages)
        else:
            text = await self._stream(llm, messages, on_token)

        logger.info(
            "answer_composed",
            bot_id=bot.id,
            model=llm.model,
            sources=len(matches),
            streamed=on_token is not None,
            answer_length=len(text),
        )
        await self._record_message(bot.id)

        return ChatAnswer(
            text=text,
            sources=[
                SourceReference(
                    text=match.text,
                    preview=preview(match.text),
                    score=match.score,
                    metadata=match.metadata,
                )
                for match in matches
            ],
        )

    def build_messages(
        self,
        bot: Bot,
        question: str,
        matches: Sequence[QueryMatch],
        history: Sequence[ConversationTurn] = (),
    ) -> list[ChatMessage]:
        """Return the ``[system, user]`` messages sent to the model."""
        context = "\n\n".join(match.text for match in matches)
        conversation = format_history(history, self._history_turns)
        return [
            {"role": "system", "content": bot.settings.system_message},
            {
                "role": "user",
                "content": fill_template(bot.settings.prompt_template, context, conversation, question),
            },
        ]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _discard_foreign(bot_id: str, matches: list[QueryMatch]) -> list[QueryMatch]:
        kept: list[QueryMatch] = []
        for match in matches:
            owner = match.metadata.get(META_CHATBOT_ID)
            if owner != bot_id:
                violation = TenantIsolationViolation(
                    message=f"Record {match.id} owned by '{owner}' returned for bot '{bot_id}'",
                )
                logger.error("tenant_isolation_violation", bot_id=bot_id, error=str(violation))
                continue
            kept.append(match)
        return kept

    @staticmethod
    async def _stream(llm: ILLMProvider, messages: list[ChatMessage], on_token: TokenSink) -> str:
        parts: list[str] = []
        stream = llm.stream(messages)
        try:
            async for token in stream:
                parts.append(token)
                result = on_token(token)
                if inspect.isawaitable(result):
                    await result
        finally:
            # Closing the generator closes the model's HTTP stream.
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
        return "".join(parts)

    async def _record_message(self, bot_id: str) -> None:
        if self._document_store is None:
            return
        try:
            await self._document_store.record_message(bot_id)
        except Exception as exc:
            logger.warning("bot_analytics_update_failed", bot_id=bot_id, error=str(exc))
