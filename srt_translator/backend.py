"""翻訳バックエンド（テキスト生成API）との通信モジュール."""

import json
import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from .config_handler import TranslationConfig
from .error_handler import BackendStatusError, BackendTransportError, ConfigurationError
from .models import ChatCompletionRequest, TranslationRequestContext

logger = logging.getLogger(__name__)


class TranslationBackend:
    """
    テキスト生成APIの基底クラス.

    サブクラスは ``generate`` を実装し、通信障害・タイムアウト・不正な応答には
    BackendTransportError を、2xx以外のステータスには BackendStatusError を送出する。
    """

    def __init__(self, base_url: str, model_name: str, request_timeout: float = 55.0):
        self.base_url = base_url.rstrip('/')
        self.model = model_name
        self.request_timeout = request_timeout
        self.client = httpx.AsyncClient(timeout=httpx.Timeout(request_timeout))

    async def __aenter__(self):
        """非同期コンテキストマネージャーの開始."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """非同期コンテキストマネージャーの終了."""
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    async def generate(
        self,
        system_instruction: str,
        prompt: str,
        context: TranslationRequestContext
    ) -> str:
        raise NotImplementedError

    async def _post_json(self, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> Dict[str, Any]:
        """
        JSONリクエストを送信してレスポンスを辞書で返す.

        Raises:
            BackendStatusError: 2xx以外のステータスの場合
            BackendTransportError: 通信エラーまたはJSONとして解釈できない場合
        """
        try:
            response = await self.client.post(url, json=payload, headers=headers)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            error_msg = f"HTTP Error {e.response.status_code}: {e.response.text}"
            logger.error(f"API request failed: {error_msg}")
            raise BackendStatusError(
                error_msg,
                status_code=e.response.status_code,
                url=url,
                api_response=e.response.text,
                model_name=self.model
            ) from e
        except httpx.TimeoutException as e:
            error_msg = f"Request timed out after {self.request_timeout}s"
            logger.error(f"API request failed: {error_msg}")
            raise BackendTransportError(error_msg, url=url, timeout=self.request_timeout,
                                        model_name=self.model) from e
        except httpx.RequestError as e:
            error_msg = f"Request Error: {str(e)}"
            logger.error(f"API request failed: {error_msg}")
            raise BackendTransportError(error_msg, url=url, model_name=self.model) from e
        except json.JSONDecodeError as e:
            error_msg = f"Invalid API response format: {str(e)}"
            logger.error(f"API response parsing failed: {error_msg}")
            raise BackendTransportError(error_msg, url=url, model_name=self.model) from e

        if not isinstance(data, dict):
            error_msg = f"Invalid API response format: expected JSON object, got {type(data).__name__}"
            logger.error(f"API response parsing failed: {error_msg}")
            raise BackendTransportError(error_msg, url=url, model_name=self.model)
        return data


class GeminiBackend(TranslationBackend):
    """Google Generative Language API (generateContent) を利用するバックエンド."""

    def __init__(
        self,
        api_key: str,
        model_name: str,
        base_url: str = "https://generativelanguage.googleapis.com",
        request_timeout: float = 55.0
    ):
        super().__init__(base_url, model_name, request_timeout)
        self.api_key = api_key

    def build_request_body(
        self,
        system_instruction: str,
        prompt: str,
        context: TranslationRequestContext
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "systemInstruction": {"parts": [{"text": system_instruction}]},
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
        }
        # thinkingLevel は Gemini 3 系モデルのみ受け付ける
        if context.is_gemini3_model:
            body["generationConfig"] = {
                "thinkingConfig": {"thinkingLevel": context.thinking_level}
            }
        return body

    async def generate(
        self,
        system_instruction: str,
        prompt: str,
        context: TranslationRequestContext
    ) -> str:
        url = f"{self.base_url}/v1beta/models/{self.model}:generateContent"
        result = await self._post_json(
            url,
            self.build_request_body(system_instruction, prompt, context),
            headers={"Content-Type": "application/json", "x-goog-api-key": self.api_key}
        )

        try:
            parts = result["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError) as e:
            raise BackendTransportError(
                f"APIレスポンスに候補が含まれていません: {str(e)}", url=url, model_name=self.model
            ) from e

        if not isinstance(parts, list) or not all(isinstance(part, dict) for part in parts):
            raise BackendTransportError("Invalid API response format: parts", url=url, model_name=self.model)

        # 思考過程のパートは除外する
        texts = [part.get("text", "") for part in parts if not part.get("thought")]
        if not all(isinstance(text, str) for text in texts):
            raise BackendTransportError("Invalid API response format: text", url=url, model_name=self.model)
        text = "".join(texts)
        if not text.strip():
            raise BackendTransportError("翻訳結果が空です", url=url, model_name=self.model)
        return text


class OpenAICompatibleBackend(TranslationBackend):
    """LM Studio など OpenAI 互換の chat completions API を利用するバックエンド."""

    def __init__(
        self,
        base_url: str,
        model_name: str,
        request_timeout: float = 55.0,
        api_key: Optional[str] = None
    ):
        super().__init__(base_url, model_name, request_timeout)
        self.api_key = api_key

    async def generate(
        self,
        system_instruction: str,
        prompt: str,
        context: TranslationRequestContext
    ) -> str:
        try:
            request_data = ChatCompletionRequest(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_instruction},
                    {"role": "user", "content": prompt}
                ],
                temperature=0.3
            )
        except ValidationError as e:
            raise BackendTransportError(f"Request validation error: {str(e)}", model_name=self.model) from e

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        url = f"{self.base_url}/v1/chat/completions"
        result = await self._post_json(url, request_data.model_dump(exclude_none=True), headers)

        if not result.get("choices"):
            raise BackendTransportError("APIレスポンスにchoicesが含まれていません", url=url, model_name=self.model)

        try:
            translated_text = result["choices"][0]["message"]["content"] or ""
        except (KeyError, TypeError) as e:
            raise BackendTransportError(f"Invalid API response format: {str(e)}", url=url,
                                        model_name=self.model) from e

        if not isinstance(translated_text, str):
            raise BackendTransportError("Invalid API response format: content", url=url, model_name=self.model)

        if not translated_text.strip():
            raise BackendTransportError("翻訳結果が空です", url=url, model_name=self.model)
        return translated_text


def create_backend(config: TranslationConfig) -> TranslationBackend:
    """
    設定に応じたバックエンドを生成.

    Raises:
        ConfigurationError: 必要な認証情報が設定されていない場合
    """
    if config.provider == "gemini":
        if not config.api_key:
            raise ConfigurationError("Gemini APIキーが設定されていません", setting="api_key")
        return GeminiBackend(
            api_key=config.api_key,
            model_name=config.model_name,
            base_url=config.api_base_url,
            request_timeout=config.request_timeout
        )
    return OpenAICompatibleBackend(
        base_url=config.api_base_url,
        model_name=config.model_name,
        request_timeout=config.request_timeout,
        api_key=config.api_key
    )
