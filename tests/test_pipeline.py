"""翻訳ランの実行テスト."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from srt_translator.config_handler import TranslationConfig
from srt_translator.error_handler import BackendStatusError, SRTParseError
from srt_translator.models import RunStatus
from srt_translator.pipeline import Run, TranslationPipeline
from srt_translator.srt_parser import parse_document
from srt_translator.translator import TRANSLATION_DELIMITER


def make_config(**overrides):
    values = dict(
        api_key="test-key",
        max_tokens_per_batch=100,
        inter_batch_delay=0.0,
        retry_base_delay=0.0,
        retry_max_delay=0.0
    )
    values.update(overrides)
    return TranslationConfig(**values)


def payload_of(prompt):
    return prompt.split(": ", 1)[1]


def make_backend(transform):
    """プロンプト内の各セグメントに transform を適用して返すバックエンド."""
    async def generate(system_instruction, prompt, context):
        pieces = payload_of(prompt).split(TRANSLATION_DELIMITER)
        return TRANSLATION_DELIMITER.join(transform(piece) for piece in pieces)

    backend = MagicMock()
    backend.generate = AsyncMock(side_effect=generate)
    return backend


def srt(*entries):
    return "".join(f"{i}\n{ts}\n{text}\n\n" for i, ts, text in entries)


class TestTranslationPipeline:
    """TranslationPipeline のテスト."""

    @pytest.mark.asyncio
    async def test_two_segments_single_group(self):
        translations = {"Hello": "Hola", "World": "Mundo"}
        backend = make_backend(lambda text: translations[text])
        pipeline = TranslationPipeline(make_config(), backend)
        content = srt(
            (1, "00:00:01,000 --> 00:00:02,000", "Hello"),
            (2, "00:00:03,000 --> 00:00:04,000", "World"),
        )

        run = Run(language="Spanish (Spain)")
        result = await pipeline.translate_document(content, "Spanish (Spain)", run)

        assert result == srt(
            (1, "00:00:01,000 --> 00:00:02,000", "Hola"),
            (2, "00:00:03,000 --> 00:00:04,000", "Mundo"),
        )
        assert backend.generate.await_count == 1
        assert run.status is RunStatus.DONE
        assert run.progress.received_chunks == 2
        assert run.progress.percent_complete == 100.0

    @pytest.mark.asyncio
    async def test_identity_round_trip_preserves_ids_timestamps_and_line_breaks(self):
        backend = make_backend(lambda text: text)
        pipeline = TranslationPipeline(make_config(), backend)
        content = srt(
            (3, "00:00:01,000 --> 00:00:02,000", "- Hi!\n- Hello."),
            (7, "00:00:03.000 --> 00:00:04.000", "Second"),
            (9, "00:00:05,000 --> 00:00:06,000", "Third\nline"),
        )

        result = await pipeline.translate_document(content, "English")

        assert result == content

    @pytest.mark.asyncio
    async def test_blank_lines_in_translation_do_not_split_blocks(self):
        backend = make_backend(lambda text: "- ¿Vienes?\n\n- Sí.")
        pipeline = TranslationPipeline(make_config(), backend)
        content = srt((1, "00:00:01,000 --> 00:00:02,000", "- Coming?\n- Yes."))

        result = await pipeline.translate_document(content, "Spanish (Spain)")

        segments = parse_document(result)
        assert len(segments) == 1
        assert segments[0].text == "- ¿Vienes?\n- Sí."
        assert result == srt((1, "00:00:01,000 --> 00:00:02,000", "- ¿Vienes?\n- Sí."))

    @pytest.mark.asyncio
    async def test_groups_are_streamed_in_order(self):
        """各グループは順番に翻訳され、グループ単位でバイト列が出力される."""
        backend = make_backend(str.upper)
        pipeline = TranslationPipeline(make_config(), backend)
        texts = ["a" * 300, "b" * 300, "c" * 300]
        content = srt(*[
            (i, f"00:00:0{i},000 --> 00:00:0{i},500", text) for i, text in enumerate(texts, 1)
        ])

        run = pipeline.prepare(Run(language="English", run_id="run-7", batch_label="2/5"), content)
        assert len(run.groups) == 3

        chunks = [data async for data in pipeline.stream(run)]

        assert [data.decode("utf-8") for data in chunks] == [
            f"{i}\n00:00:0{i},000 --> 00:00:0{i},500\n{text.upper()}\n\n" for i, text in enumerate(texts, 1)
        ]
        contexts = [call.args[2] for call in backend.generate.call_args_list]
        assert [c.group_index for c in contexts] == [1, 2, 3]
        assert all(c.total_groups == 3 and c.run_id == "run-7" and c.batch_label == "2/5" for c in contexts)
        assert run.progress.completed_groups == 3

    @pytest.mark.asyncio
    async def test_request_context_carries_thinking_options(self):
        backend = make_backend(lambda text: text)
        pipeline = TranslationPipeline(make_config(thinking_level="high"), backend)

        await pipeline.translate_document(srt((1, "00:00:01,000 --> 00:00:02,000", "Hi")), "English")

        context = backend.generate.call_args.args[2]
        assert context.thinking_level == "high"
        assert context.is_gemini3_model is True
        assert context.model_name == "gemini-3-flash-preview"

    @pytest.mark.asyncio
    async def test_no_valid_segments(self):
        """有効な字幕がない場合はバックエンドを呼ばずに失敗する."""
        backend = make_backend(lambda text: text)
        pipeline = TranslationPipeline(make_config(), backend)
        run = Run(language="English")

        with pytest.raises(SRTParseError) as exc_info:
            await pipeline.translate_document("just some text\n\nwithout timestamps", "English", run)

        assert exc_info.value.message == "No valid SRT segments found in request content."
        backend.generate.assert_not_called()
        assert run.progress.total_segments == 0
        assert run.status is RunStatus.FAILED
        assert run.error is exc_info.value

    @pytest.mark.asyncio
    async def test_retries_are_counted(self):
        backend = MagicMock()
        backend.generate = AsyncMock(side_effect=["Hola Mundo", f"Hola{TRANSLATION_DELIMITER}Mundo"])
        pipeline = TranslationPipeline(make_config(), backend)
        run = Run(language="Spanish")

        await pipeline.translate_document(
            srt((1, "00:00:01,000 --> 00:00:02,000", "Hello"), (2, "00:00:03,000 --> 00:00:04,000", "World")),
            "Spanish",
            run
        )

        assert run.progress.retries == 1
        assert run.status is RunStatus.DONE

    @pytest.mark.asyncio
    async def test_failure_fails_run_without_partial_output(self):
        """途中のグループが失敗した場合は例外となり、途中までの結果は返らない."""
        backend = MagicMock()
        backend.generate = AsyncMock(side_effect=[
            "A" * 300,
            BackendStatusError("HTTP Error 400", status_code=400),
        ])
        pipeline = TranslationPipeline(make_config(), backend)
        content = srt(
            (1, "00:00:01,000 --> 00:00:02,000", "a" * 300),
            (2, "00:00:03,000 --> 00:00:04,000", "b" * 300),
        )
        run = Run(language="English")

        with pytest.raises(BackendStatusError):
            await pipeline.translate_document(content, "English", run)

        assert run.status is RunStatus.FAILED
        assert run.progress.completed_groups == 1
        assert isinstance(run.error, BackendStatusError)
