"""Unit tests for the training CLI (src.cli.train)."""

from __future__ import annotations

import base64
from argparse import Namespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.cli.train import (
    _build_parser,
    _handle_ask,
    _handle_create_bot,
    _handle_document,
    _handle_purge,
    _handle_stats,
    _handle_text,
    _read_file,
    _run,
    main,
)
from src.config.settings import Settings
from src.models.chat import ChatAnswer, SourceReference
from src.models.training import IngestionErr, IngestionOk, IngestionProgress, SourceDocument
from src.services.training_data_service import TrainingOverview
from src.utils.errors import NotFoundError

# ======================================================================
# Shared helpers
# ======================================================================


def _ok(record_id: str = "doc-1", chunks: int = 3) -> IngestionOk:
    return IngestionOk(
        record_id=record_id,
        progress=IngestionProgress(chunk_count=chunks, processed_chunk_count=chunks),
    )


def _components(**overrides) -> dict:
    components = {
        "document_store": MagicMock(),
        "ingestion_service": MagicMock(),
        "training_data_service": MagicMock(),
        "answer_composer": MagicMock(),
        "http_client": MagicMock(aclose=AsyncMock()),
    }
    components.update(overrides)
    return components


# ======================================================================
# Parser
# ======================================================================


class TestParser:
    def test_document_accepts_several_files(self) -> None:
        args = _build_parser().parse_args(["document", "--bot", "b1", "--file", "a.pdf", "b.txt"])
        assert args.command == "document"
        assert args.file == ["a.pdf", "b.txt"]

    def test_website_depth(self) -> None:
        args = _build_parser().parse_args(["website", "--bot", "b1", "--url", "https://example.com", "--depth", "2"])
        assert args.depth == 2

    def test_website_depth_defaults_to_none(self) -> None:
        args = _build_parser().parse_args(["website", "--bot", "b1", "--url", "https://example.com"])
        assert args.depth is None

    def test_purge_targets_are_exclusive(self) -> None:
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["purge", "--bot", "b1", "--document", "d1", "--url", "https://x.com"])

    def test_ask_flags(self) -> None:
        args = _build_parser().parse_args(["ask", "--bot", "b1", "--no-stream", "--sources", "Refunds?"])
        assert args.no_stream is True
        assert args.sources is True
        assert args.question == "Refunds?"

    def test_main_without_command_exits(self) -> None:
        with pytest.raises(SystemExit) as excinfo:
            main([])
        assert excinfo.value.code == 1


# ======================================================================
# Helpers
# ======================================================================


class TestReadFile:
    def test_encodes_payload_and_guesses_mime_type(self, tmp_path) -> None:
        path = tmp_path / "faq.txt"
        path.write_bytes(b"Hello there")

        entry = _read_file(path)

        assert base64.b64decode(entry["content"]) == b"Hello there"
        assert entry["metadata"] == {"originalName": "faq.txt", "mimeType": "text/plain", "size": 11}


# ======================================================================
# Handlers
# ======================================================================


class TestHandlers:
    @pytest.mark.asyncio
    async def test_create_bot(self, capsys) -> None:
        store = MagicMock()
        store.save_bot = AsyncMock(side_effect=lambda bot: bot)

        code = await _handle_create_bot(Namespace(name="Support"), _components(document_store=store))

        assert code == 0
        assert "Created bot 'Support'" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_document_missing_file(self, tmp_path, capsys) -> None:
        args = Namespace(bot="b1", file=[str(tmp_path / "missing.pdf")])
        assert await _handle_document(args, _components()) == 1
        assert "not found" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_document_reports_each_file(self, tmp_path, capsys) -> None:
        (tmp_path / "a.txt").write_text("alpha")
        (tmp_path / "b.txt").write_text("beta")
        ingestion = MagicMock()
        ingestion.ingest_documents = AsyncMock(
            return_value=[
                _ok(),
                IngestionErr(
                    record_id="doc-2",
                    kind="embedding",
                    message="quota exceeded",
                    progress=IngestionProgress(chunk_count=4, processed_chunk_count=2),
                ),
            ]
        )
        args = Namespace(bot="b1", file=[str(tmp_path / "a.txt"), str(tmp_path / "b.txt")])

        code = await _handle_document(args, _components(ingestion_service=ingestion))

        assert code == 1
        out = capsys.readouterr().out
        assert "a.txt: ok" in out
        assert "b.txt: FAILED (embedding) quota exceeded" in out
        assert "2/4" in out

    @pytest.mark.asyncio
    async def test_text(self) -> None:
        ingestion = MagicMock()
        ingestion.ingest_text = AsyncMock(return_value=_ok())
        args = Namespace(bot="b1", text="hello", name="note.txt")

        assert await _handle_text(args, _components(ingestion_service=ingestion)) == 0
        ingestion.ingest_text.assert_awaited_once_with("b1", "hello", name="note.txt")

    @pytest.mark.asyncio
    async def test_stats(self, trained_bot, capsys) -> None:
        service = MagicMock()
        service.overview = AsyncMock(
            return_value=TrainingOverview(
                bot_id="bot-a",
                summary=trained_bot.training,
                documents=[SourceDocument(chatbot_id="bot-a", original_name="a.txt")],
                vector_count=2,
            )
        )

        assert await _handle_stats(Namespace(bot="bot-a"), _components(training_data_service=service)) == 0
        out = capsys.readouterr().out
        assert "Stored vectors:      2" in out
        assert "a.txt" in out

    @pytest.mark.asyncio
    async def test_purge_aborted(self) -> None:
        service = MagicMock()
        service.delete_all = AsyncMock(return_value=0)
        args = Namespace(bot="b1", document=None, url=None, yes=False)

        with patch("builtins.input", return_value="n"):
            code = await _handle_purge(args, _components(training_data_service=service))

        assert code == 1
        service.delete_all.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_purge_website(self, capsys) -> None:
        service = MagicMock()
        service.delete_website = AsyncMock(return_value=5)
        args = Namespace(bot="b1", document=None, url="https://example.com", yes=True)

        assert await _handle_purge(args, _components(training_data_service=service)) == 0
        service.delete_website.assert_awaited_once_with("b1", "https://example.com")
        assert "Deleted 5 vectors" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_ask_streams_tokens(self, trained_bot, capsys) -> None:
        store = MagicMock()
        store.get_bot = AsyncMock(return_value=trained_bot)

        async def _answer(bot, question, on_token=None):
            for token in ("Within ", "30 days."):
                on_token(token)
            return ChatAnswer(
                text="Within 30 days.",
                sources=[SourceReference(text="t", preview="t", score=0.9, metadata={"source": "refunds.txt"})],
            )

        composer = MagicMock()
        composer.answer = AsyncMock(side_effect=_answer)
        args = Namespace(bot="bot-a", question="Refunds?", no_stream=False, sources=True)

        assert await _handle_ask(args, _components(document_store=store, answer_composer=composer)) == 0
        out = capsys.readouterr().out
        assert out.startswith("Within 30 days.")
        assert "[0.90] refunds.txt" in out

    @pytest.mark.asyncio
    async def test_ask_missing_bot(self, capsys) -> None:
        store = MagicMock()
        store.get_bot = AsyncMock(return_value=None)
        args = Namespace(bot="nope", question="q", no_stream=True, sources=False)

        assert await _handle_ask(args, _components(document_store=store)) == 1


class TestRun:
    @pytest.mark.asyncio
    async def test_application_errors_become_exit_code_one(self, capsys) -> None:
        store = MagicMock(initialize=AsyncMock())
        service = MagicMock()
        service.overview = AsyncMock(side_effect=NotFoundError(message="Bot 'nope' not found"))
        components = _components(document_store=store, training_data_service=service)

        with (
            patch("src.cli.train.build_components", return_value=components),
            patch("src.cli.train.load_config", return_value={}),
        ):
            code = await _run(Namespace(command="stats", bot="nope"), Settings(openai_api_key=""))

        assert code == 1
        assert "Bot 'nope' not found" in capsys.readouterr().err
        components["http_client"].aclose.assert_awaited_once()
