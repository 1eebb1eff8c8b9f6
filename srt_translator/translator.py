"""翻訳バックエンドを利用したグループ単位の翻訳モジュール."""

import asyncio
import logging
import random
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence

from .backend import TranslationBackend
from .error_handler import (
    BackendStatusError,
    BackendTransportError,
    ExhaustedRetriesError,
    ShapeMismatchError,
    TranslationError,
    to_error_log,
)
from .models import Segment, TranslationRequestContext

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
MODEL_CALL_TIMEOUT = 55.0
TRANSLATION_DELIMITER = "|||SRT_SEGMENT|||"
TRANSLATION_DELIMITER_CORE = TRANSLATION_DELIMITER.strip("|")
RETRIABLE_STATUS_CODES = frozenset({408, 425, 429, 500, 502, 503, 504})

_QUOTES = "\"'“”‘’"
# 引用符で囲まれた区切り文字や、パイプの数・空白の揺れを許容する
PERMISSIVE_DELIMITER = re.compile(
    rf"[{_QUOTES}]?\|{{3,}}\s*{re.escape(TRANSLATION_DELIMITER_CORE)}\s*\|{{3,}}[{_QUOTES}]?"
)

RetryCallback = Callable[[int, Exception], None]


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    RETRIABLE = "retriable"
    TERMINAL = "terminal"


@dataclass
class AttemptOutcome:
    """1回の試行結果."""

    kind: OutcomeKind
    data: Optional[List[str]] = None
    error: Optional[Exception] = None

    @classmethod
    def success(cls, data: List[str]) -> "AttemptOutcome":
        return cls(OutcomeKind.SUCCESS, data=data)

    @classmethod
    def retriable(cls, error: Exception) -> "AttemptOutcome":
        return cls(OutcomeKind.RETRIABLE, error=error)

    @classmethod
    def terminal(cls, error: Exception) -> "AttemptOutcome":
        return cls(OutcomeKind.TERMINAL, error=error)


def build_payload(group: Sequence[Segment]) -> str:
    """グループのテキストを区切り文字で連結."""
    return TRANSLATION_DELIMITER.join(segment.text for segment in group)


def build_system_instruction(expected_segments: int) -> str:
    """
    翻訳方針を示すシステム指示を構築.

    Args:
        expected_segments: 入力に含まれるセグメント数

    Returns:
        システム指示の文字列
    """
    rules = [
        "Preserve meaning, tone, context, and intent naturally.",
        "Prioritize idiomatic, native phrasing in the target language over literal word-by-word translation.",
        "Keep dialogue phrasing conversational and subtitle-appropriate.",
        "Maintain the original grammatical person (first, second, or third) unless grammatically unavoidable.",
        "Keep verb conjugations and pronouns aligned with the original speaker perspective.",
        "Preserve formal/informal register unless grammatically unavoidable.",
        "Do not merge, split, reorder, summarize, censor, or omit segments.",
        "Preserve internal line breaks inside each subtitle segment.",
        "If a segment has multiple lines (for example, dialogue turns), keep the same line order and line-break structure.",
        "Preserve punctuation style and emphasis (including dashes for dialogue turns).",
    ]
    return "\n".join([
        "You are an experienced semantic translator specialized in creating SRT subtitles.",
        "You strictly follow these rules:",
        *(f"- {rule}" for rule in rules),
        "",
        f'The input text contains {expected_segments} subtitle segments separated by "{TRANSLATION_DELIMITER}".',
        f"Return exactly {expected_segments} translated segments in the same order, "
        f'separated only by "{TRANSLATION_DELIMITER}".',
        "Output only translated segment text.",
        "Never add numbering, timestamps, markdown, code fences, or explanations.",
        f'Never include "{TRANSLATION_DELIMITER}" inside any translated segment.',
    ])


def build_user_prompt(language: str, payload: str) -> str:
    return f"Translate to {language}: {payload}"


def split_translated_segments(raw_text: str) -> List[str]:
    """
    バックエンドの出力を区切り文字で分割.

    区切り文字の表記揺れ（引用符やパイプの重複）を正規化してから分割する。

    Args:
        raw_text: バックエンドの生の出力

    Returns:
        前後の空白を除去した各セグメント
    """
    normalized = raw_text.replace("\r\n", "\n").strip()
    normalized = PERMISSIVE_DELIMITER.sub(TRANSLATION_DELIMITER, normalized)
    return [piece.strip() for piece in normalized.split(TRANSLATION_DELIMITER)]


def calculate_backoff_delay(attempt: int, base_delay: float = 1.0, max_delay: float = 8.0) -> float:
    """
    指数バックオフの待機時間を計算.

    Args:
        attempt: 失敗した試行番号（1始まり）
        base_delay: 初回の待機時間（秒）
        max_delay: 待機時間の上限（秒、ジッター加算前）

    Returns:
        ジッター（0〜50%）を加えた待機時間
    """
    delay = min(base_delay * (2 ** (attempt - 1)), max_delay)
    return delay + random.uniform(0, delay * 0.5)


def is_retriable_status(status_code: int) -> bool:
    return status_code in RETRIABLE_STATUS_CODES


class Translator:
    """翻訳バックエンドと連携してグループ単位の翻訳を行うクラス."""

    def __init__(
        self,
        backend: TranslationBackend,
        max_retries: int = MAX_RETRIES,
        request_timeout: float = MODEL_CALL_TIMEOUT,
        retry_base_delay: float = 1.0,
        retry_max_delay: float = 8.0
    ):
        """
        翻訳クラスを初期化.

        Args:
            backend: テキスト生成バックエンド
            max_retries: 1グループあたりの最大試行回数
            request_timeout: 1回の試行のタイムアウト（秒）
            retry_base_delay: バックオフの初期待機時間（秒）
            retry_max_delay: バックオフの待機時間の上限（秒）
        """
        self.backend = backend
        self.max_retries = max_retries
        self.request_timeout = request_timeout
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay

    async def _attempt(
        self,
        payload: str,
        language: str,
        expected_segments: int,
        context: TranslationRequestContext
    ) -> AttemptOutcome:
        """
        1回分の翻訳リクエストを実行して結果を分類.

        タイムアウト・通信エラー・件数不一致・再試行可能なステータスは
        retriable、それ以外のステータスは terminal として返す。
        """
        try:
            raw_text = await asyncio.wait_for(
                self.backend.generate(
                    build_system_instruction(expected_segments),
                    build_user_prompt(language, payload),
                    context
                ),
                timeout=self.request_timeout
            )
        except asyncio.TimeoutError as e:
            error = BackendTransportError(
                f"Model call timed out after {self.request_timeout}s",
                timeout=self.request_timeout,
                model_name=context.model_name
            )
            error.__cause__ = e
            return AttemptOutcome.retriable(error)
        except BackendStatusError as e:
            if is_retriable_status(e.status_code):
                return AttemptOutcome.retriable(e)
            return AttemptOutcome.terminal(e)
        except BackendTransportError as e:
            return AttemptOutcome.retriable(e)

        pieces = [piece for piece in split_translated_segments(raw_text) if piece]
        if len(pieces) != expected_segments:
            return AttemptOutcome.retriable(ShapeMismatchError(expected_segments, len(pieces)))

        return AttemptOutcome.success(pieces)

    async def translate_group(
        self,
        group: Sequence[Segment],
        language: str,
        context: TranslationRequestContext,
        on_retry: Optional[RetryCallback] = None
    ) -> List[str]:
        """
        グループを翻訳してセグメントごとの翻訳テキストを返す.

        Args:
            group: 翻訳対象のグループ
            language: 翻訳先の言語
            context: ログ出力とバックエンドオプション用のコンテキスト
            on_retry: 再試行のたびに (試行番号, エラー) で呼ばれるコールバック

        Returns:
            入力と同じ順序・同じ件数の翻訳テキスト

        Raises:
            BackendStatusError: 再試行対象外のステータスが返された場合
            ExhaustedRetriesError: すべての試行が失敗した場合
        """
        if not group:
            raise TranslationError("翻訳対象のグループが空です")

        payload = build_payload(group)
        expected_segments = len(group)
        label = (
            f"[translate][{context.run_id}] Batch {context.batch_label} "
            f"group {context.group_index}/{context.total_groups}"
        )
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_retries + 1):
            started_at = time.monotonic()
            logger.info(
                f"{label} attempt {attempt}/{self.max_retries} started "
                f"(inputChars={len(payload)}, expectedSegments={expected_segments}, "
                f"model={context.model_name}, thinkingLevel={context.thinking_level})"
            )

            outcome = await self._attempt(payload, language, expected_segments, context)
            duration_ms = int((time.monotonic() - started_at) * 1000)

            if outcome.kind is OutcomeKind.SUCCESS:
                logger.info(
                    f"{label} attempt {attempt}/{self.max_retries} succeeded "
                    f"(durationMs={duration_ms}, outputSegments={len(outcome.data)})"
                )
                return outcome.data

            last_error = outcome.error
            logger.error(
                f"{label} attempt {attempt}/{self.max_retries} failed "
                f"(durationMs={duration_ms}, {to_error_log(last_error)})"
            )

            if outcome.kind is OutcomeKind.TERMINAL:
                raise last_error

            if attempt < self.max_retries:
                delay = calculate_backoff_delay(attempt, self.retry_base_delay, self.retry_max_delay)
                logger.warning(f"{label} retrying in {int(delay * 1000)}ms")
                if on_retry is not None:
                    on_retry(attempt, last_error)
                await asyncio.sleep(delay)

        raise ExhaustedRetriesError(last_error, self.max_retries) from last_error
