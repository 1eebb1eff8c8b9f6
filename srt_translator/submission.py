"""
ドキュメント送信の受付モジュール

リクエスト（本文とヘッダー）を検証してランを開始し、
出力ブロックのバイトストリームまたはJSONエラーを返す。
"""

import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, Mapping, Optional, Tuple

from .backend import TranslationBackend, create_backend
from .config_handler import ConfigHandler, MISSING_API_KEY_MESSAGE, TranslationConfig
from .error_handler import SRTParseError, to_error_log
from .pipeline import Run, TranslationPipeline

logger = logging.getLogger(__name__)

RUN_ID_HEADER = "x-translation-run-id"
REQUEST_NUMBER_HEADER = "x-translation-request-number"
TOTAL_REQUESTS_HEADER = "x-translation-total-requests"

BackendFactory = Callable[[TranslationConfig], TranslationBackend]


@dataclass
class SubmissionResponse:
    """送信に対する応答（ストリームまたはJSONエラー）"""
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[AsyncIterator[bytes]] = None
    error: Optional[Dict[str, Any]] = None
    run: Optional[Run] = None
    backend: Optional[TranslationBackend] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json_body(self) -> str:
        return json.dumps(self.error or {})

    async def aclose(self) -> None:
        """ストリームとバックエンドの接続を閉じる（本文を読み切らない場合も呼ぶ）"""
        if self.body is not None:
            await self.body.aclose()
        if self.backend is not None:
            await self.backend.aclose()


def _header(headers: Mapping[str, str], name: str) -> str:
    for key, value in headers.items():
        if key.lower() == name:
            return (value or "").strip()
    return ""


def _parse_positive_int(value: str) -> Optional[int]:
    try:
        number = int(value)
    except ValueError:
        return None
    return number if number > 0 else None


def resolve_batch_label(headers: Mapping[str, str]) -> str:
    """リクエスト番号ヘッダーから ``n/total`` 形式のラベルを作る"""
    request_number = _parse_positive_int(_header(headers, REQUEST_NUMBER_HEADER))
    if request_number is None:
        return "unknown"
    total_requests = _parse_positive_int(_header(headers, TOTAL_REQUESTS_HEADER))
    if total_requests is None:
        return str(request_number)
    return f"{request_number}/{total_requests}"


def parse_payload(payload: Any) -> Optional[Tuple[str, str]]:
    """
    送信内容から本文と言語を取り出す

    Returns:
        (content, language)。不正な場合はNone
    """
    if not isinstance(payload, dict):
        return None

    content = payload.get("content")
    language = payload.get("language")
    if not isinstance(content, str) or not isinstance(language, str):
        return None
    if not content.strip() or not language.strip():
        return None

    return content, language.strip()


def _error_response(status_code: int, message: str, run_id: str) -> SubmissionResponse:
    return SubmissionResponse(
        status_code=status_code,
        headers={"Content-Type": "application/json", RUN_ID_HEADER: run_id},
        error={"error": message, "runId": run_id}
    )


async def submit_translation(
    payload: Any,
    headers: Optional[Mapping[str, str]] = None,
    config_handler: Optional[ConfigHandler] = None,
    backend_factory: BackendFactory = create_backend
) -> SubmissionResponse:
    """
    翻訳リクエストを受け付けてランを開始する

    Args:
        payload: ``{"content": str, "language": str}``
        headers: トレース用ヘッダー（ラン識別子とバッチ番号）
        config_handler: 設定の解決に使うハンドラ
        backend_factory: 設定からバックエンドを生成する関数

    Returns:
        SubmissionResponse: 成功時はバイトストリーム、失敗時はJSONエラー
    """
    headers = headers or {}
    run_id = _header(headers, RUN_ID_HEADER) or str(uuid.uuid4())
    batch_label = resolve_batch_label(headers)
    started_at = time.monotonic()

    config, config_error = (config_handler or ConfigHandler()).resolve_from_env()

    if config.requires_api_key and not config.api_key:
        return _error_response(500, MISSING_API_KEY_MESSAGE, run_id)
    if config_error:
        return _error_response(500, config_error, run_id)

    parsed = parse_payload(payload)
    if parsed is None:
        return _error_response(400, "Invalid request. Expected content and language.", run_id)
    content, language = parsed

    logger.info(
        f"[translate][{run_id}] Batch {batch_label} accepted "
        f"(model={config.model_name}, language={language}, contentChars={len(content)}, "
        f"timeout={config.request_timeout}s, thinkingLevel={config.thinking_level}, "
        f"maxTokensPerRequest={config.max_tokens_per_batch})"
    )

    run = Run(language=language, run_id=run_id, batch_label=batch_label)
    backend = backend_factory(config)
    pipeline = TranslationPipeline(config, backend)

    try:
        pipeline.prepare(run, content)
    except SRTParseError as e:
        await backend.aclose()
        response = _error_response(400, e.message, run_id)
        response.run = run
        return response
    except Exception as e:
        await backend.aclose()
        logger.error(
            f"[translate][{run_id}] Batch {batch_label} failed "
            f"(durationMs={int((time.monotonic() - started_at) * 1000)}, {to_error_log(e)})"
        )
        response = _error_response(500, "Error during translation", run_id)
        response.run = run
        return response

    async def body() -> AsyncIterator[bytes]:
        try:
            async for data in pipeline.stream(run):
                yield data
        finally:
            await backend.aclose()

    return SubmissionResponse(
        status_code=200,
        headers={
            "Content-Type": "text/plain; charset=utf-8",
            "Cache-Control": "no-store",
            RUN_ID_HEADER: run_id,
        },
        body=body(),
        run=run,
        backend=backend
    )


def get_config_status(config_handler: Optional[ConfigHandler] = None) -> Dict[str, Any]:
    """設定状況を返す（APIキーの有無と設定値の妥当性）"""
    config, error = (config_handler or ConfigHandler()).resolve_from_env()
    has_key = bool(config.api_key) or not config.requires_api_key
    message = MISSING_API_KEY_MESSAGE if not has_key else error

    return {
        "ok": has_key and not error,
        "message": message,
        "modelName": config.model_name,
        "maxTokensPerRequest": config.max_tokens_per_batch,
        "thinkingLevel": config.thinking_level,
        "isGemini3Model": config.is_gemini3_model,
    }
