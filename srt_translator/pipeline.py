"""
翻訳ランの実行モジュール

解析 → グループ化 → グループごとの翻訳と対応付け → バイト列の出力、
という一連の処理を1つのランとして順番に実行する。
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import AsyncIterator, List, Optional

from .batcher import group_segments_by_token_length
from .backend import TranslationBackend
from .config_handler import TranslationConfig
from .error_handler import SRTParseError, to_error_log
from .models import RunStatus, Segment, TranslationRequestContext
from .progress_tracker import ProgressTracker
from .reconciler import encode_blocks, reconcile
from .srt_parser import parse_document, split_blocks
from .stream_decoder import StreamDecoder, decode_stream
from .translator import Translator

logger = logging.getLogger(__name__)


@dataclass
class Run:
    """1つのドキュメントを1つの言語へ翻訳するランの状態

    ランごとに独立しており、他のランと状態を共有しない。
    """
    language: str
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    batch_label: str = "unknown"
    segments: List[Segment] = field(default_factory=list)
    groups: List[List[Segment]] = field(default_factory=list)
    progress: ProgressTracker = field(default_factory=ProgressTracker)
    error: Optional[Exception] = None

    @property
    def status(self) -> RunStatus:
        return self.progress.status

    def fail(self, error: Exception) -> None:
        self.error = error
        self.progress.mark_failed()


class TranslationPipeline:
    """検証済みの設定とバックエンドを使ってランを実行するクラス"""

    def __init__(self, config: TranslationConfig, backend: TranslationBackend):
        self.config = config
        self.backend = backend
        self.translator = Translator(
            backend,
            max_retries=config.max_retries,
            request_timeout=config.request_timeout,
            retry_base_delay=config.retry_base_delay,
            retry_max_delay=config.retry_max_delay
        )

    def prepare(self, run: Run, content: str) -> Run:
        """
        ドキュメントを解析してグループ化し、ランを開始状態にする

        Args:
            run: 対象のラン
            content: SRT形式のドキュメント

        Returns:
            Run: 同じランオブジェクト

        Raises:
            SRTParseError: 有効なセグメントが1件もない場合（バックエンドには送信しない）
        """
        run.segments = parse_document(content)

        if not run.segments:
            run.progress.start(total_segments=0, total_groups=0)
            error = SRTParseError(
                "No valid SRT segments found in request content.",
                block_count=len(split_blocks(content))
            )
            run.fail(error)
            raise error

        run.groups = group_segments_by_token_length(run.segments, self.config.max_tokens_per_batch)
        run.progress.start(total_segments=len(run.segments), total_groups=len(run.groups))

        logger.info(
            f"[translate][{run.run_id}] Batch {run.batch_label} parsed "
            f"(segments={len(run.segments)}, groups={len(run.groups)}, "
            f"maxTokensPerRequest={self.config.max_tokens_per_batch})"
        )
        return run

    def _request_context(self, run: Run, group_index: int) -> TranslationRequestContext:
        return TranslationRequestContext(
            run_id=run.run_id,
            batch_label=run.batch_label,
            group_index=group_index,
            total_groups=len(run.groups),
            model_name=self.config.model_name,
            thinking_level=self.config.thinking_level,
            is_gemini3_model=self.config.is_gemini3_model
        )

    async def stream(self, run: Run) -> AsyncIterator[bytes]:
        """
        グループを順番に翻訳し、対応付けた出力ブロックをバイト列で返す

        グループの処理は直列で、前のグループが完了してから次へ進む。
        いずれかのグループが最終的に失敗した場合はランを失敗状態にして
        例外を再送出する。

        Yields:
            bytes: 1グループ分の出力ブロック（UTF-8）
        """
        started_at = time.monotonic()
        try:
            for group_index, group in enumerate(run.groups, 1):
                if group_index > 1 and self.config.inter_batch_delay > 0:
                    await asyncio.sleep(self.config.inter_batch_delay)

                translated = await self.translator.translate_group(
                    group,
                    run.language,
                    self._request_context(run, group_index),
                    on_retry=run.progress.record_retry
                )
                blocks = reconcile(group, translated)
                run.progress.record_group_completed(len(blocks))
                yield encode_blocks(blocks)
        except Exception as e:
            logger.error(f"[translate][{run.run_id}] Batch {run.batch_label} stream error {to_error_log(e)}")
            run.fail(e)
            raise

        run.progress.mark_done()
        logger.info(
            f"[translate][{run.run_id}] Batch {run.batch_label} streamed "
            f"(durationMs={int((time.monotonic() - started_at) * 1000)}, "
            f"outputSegments={run.progress.translated_segments})"
        )

    async def translate_document(self, content: str, language: str, run: Optional[Run] = None) -> str:
        """
        ドキュメント全体を翻訳して完成したSRT文字列を返す

        失敗時は例外を送出し、途中までの結果は返さない。
        """
        run = run or Run(language=language)
        self.prepare(run, content)

        decoder = StreamDecoder()
        async for _ in decode_stream(self.stream(run), decoder):
            run.progress.record_chunk()
        return decoder.content
