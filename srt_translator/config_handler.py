"""
設定管理モジュール

SRT翻訳システムの設定値を管理し、検証を行います。
環境変数の読み込みは ConfigHandler が担当し、翻訳処理には
検証済みの TranslationConfig のみを渡します。
"""

import os
import re
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple
from urllib.parse import urlparse

from .error_handler import ConfigurationError


PROVIDERS = ("gemini", "lmstudio")
THINKING_LEVELS = ("minimal", "low", "medium", "high")

DEFAULT_PROVIDER = "gemini"
DEFAULT_GEMINI_MODEL_NAME = "gemini-3-flash-preview"
DEFAULT_GEMINI_API_URL = "https://generativelanguage.googleapis.com"
DEFAULT_LM_STUDIO_URL = "http://localhost:1234"
DEFAULT_BATCH_TOKENS = 350
MIN_BATCH_TOKENS = 100
MAX_BATCH_TOKENS = 2000
DEFAULT_THINKING_LEVEL = "low"

API_KEY_ENV = "GOOGLE_GENERATIVE_AI_API_KEY"
MISSING_API_KEY_MESSAGE = f"Missing {API_KEY_ENV}. Set it in the environment or .env file."
INVALID_THINKING_LEVEL_MESSAGE = (
    'Invalid GEMINI_THINKING_LEVEL value. Use one of: "minimal", "low", "medium", "high".'
)
INVALID_BATCH_TOKENS_MESSAGE = (
    f"Invalid GEMINI_BATCH_TOKENS value. Use an integer between {MIN_BATCH_TOKENS} and {MAX_BATCH_TOKENS}."
)


@dataclass
class TranslationConfig:
    """翻訳設定を格納するデータクラス"""
    model_name: str = DEFAULT_GEMINI_MODEL_NAME
    max_tokens_per_batch: int = DEFAULT_BATCH_TOKENS
    thinking_level: str = DEFAULT_THINKING_LEVEL
    provider: str = DEFAULT_PROVIDER
    api_key: Optional[str] = None
    api_base_url: str = DEFAULT_GEMINI_API_URL
    request_timeout: float = 55.0
    max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 8.0
    inter_batch_delay: float = 0.25

    def __post_init__(self):
        """初期化後の検証"""
        if self.provider not in PROVIDERS:
            raise ConfigurationError(f"未対応のプロバイダです: {self.provider}", setting="provider")
        if not self.model_name or not self.model_name.strip():
            raise ConfigurationError("モデル名が設定されていません", setting="model_name")
        if isinstance(self.max_tokens_per_batch, bool) or not isinstance(self.max_tokens_per_batch, int):
            raise ConfigurationError(INVALID_BATCH_TOKENS_MESSAGE, setting="max_tokens_per_batch")
        if not MIN_BATCH_TOKENS <= self.max_tokens_per_batch <= MAX_BATCH_TOKENS:
            raise ConfigurationError(INVALID_BATCH_TOKENS_MESSAGE, setting="max_tokens_per_batch")
        if self.thinking_level not in THINKING_LEVELS:
            raise ConfigurationError(INVALID_THINKING_LEVEL_MESSAGE, setting="thinking_level")
        if self.request_timeout <= 0:
            raise ConfigurationError("タイムアウト値は正の数である必要があります", setting="request_timeout")
        if self.max_retries < 1:
            raise ConfigurationError("リトライ回数は1以上である必要があります", setting="max_retries")
        if self.retry_base_delay < 0 or self.retry_max_delay < self.retry_base_delay:
            raise ConfigurationError("リトライ待機時間の設定が不正です", setting="retry_base_delay")
        if self.inter_batch_delay < 0:
            raise ConfigurationError("バッチ間の待機時間は0以上である必要があります", setting="inter_batch_delay")

    @property
    def is_gemini3_model(self) -> bool:
        """thinkingLevel を受け付ける Gemini 3 系モデルかどうか"""
        return self.provider == "gemini" and self.model_name.startswith("gemini-3")

    @property
    def requires_api_key(self) -> bool:
        return self.provider == "gemini"


def _first_defined_env(keys: List[str]) -> Optional[str]:
    """最初に値が設定されている環境変数の値を返す（NETLIFY_ 接頭辞を優先）"""
    for key in keys:
        value = os.getenv(key, "").strip()
        if value:
            return value
    return None


class ConfigHandler:
    """設定管理クラス"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def validate_url(self, url: str) -> bool:
        """
        URL形式の検証

        Args:
            url: 検証対象のURL

        Returns:
            bool: 検証結果
        """
        if not url or not isinstance(url, str):
            return False

        try:
            parsed = urlparse(url.strip())
            port = parsed.port
        except ValueError:
            # 範囲外のポート番号など
            return False

        if parsed.scheme not in ('http', 'https'):
            return False

        if not parsed.netloc:
            return False

        if port is not None and not (1 <= port <= 65535):
            return False

        return True

    def validate_model_name(self, model_name: str) -> bool:
        """
        モデル名の検証

        Args:
            model_name: 検証対象のモデル名

        Returns:
            bool: 検証結果
        """
        if not model_name or not isinstance(model_name, str):
            return False

        if not model_name.strip():
            return False

        # アルファベット、数字、ハイフン、アンダースコア、ピリオド、スラッシュを許可
        pattern = r'^[a-zA-Z0-9._/-]+$'
        return bool(re.match(pattern, model_name.strip()))

    def resolve_from_env(self) -> Tuple[TranslationConfig, Optional[str]]:
        """
        環境変数から設定を解決

        不正な値があってもデフォルト設定を返し、エラーメッセージを併せて返す。
        設定状況の表示（check_translation_config）でも利用する。

        Returns:
            Tuple[TranslationConfig, Optional[str]]: 設定とエラーメッセージ（正常時はNone）
        """
        provider = (os.getenv("TRANSLATION_PROVIDER", "").strip().lower() or DEFAULT_PROVIDER)
        api_key = os.getenv(API_KEY_ENV, "").strip() or None

        if provider == "lmstudio":
            api_key = os.getenv("LM_API_KEY", "").strip() or None
            model_name = os.getenv("LM_MODEL_NAME", "").strip()
            base_url = os.getenv("LM_STUDIO_URL", "").strip() or DEFAULT_LM_STUDIO_URL
        else:
            model_name = _first_defined_env(["NETLIFY_GEMINI_MODEL_NAME", "GEMINI_MODEL_NAME"])
            base_url = os.getenv("GEMINI_API_URL", "").strip() or DEFAULT_GEMINI_API_URL
            model_name = model_name or DEFAULT_GEMINI_MODEL_NAME

        if provider not in PROVIDERS:
            fallback = TranslationConfig(api_key=api_key)
            return fallback, f'Invalid TRANSLATION_PROVIDER value. Use one of: {", ".join(PROVIDERS)}.'

        fallback = TranslationConfig(
            model_name=model_name or DEFAULT_GEMINI_MODEL_NAME,
            provider=provider,
            api_key=api_key,
            api_base_url=base_url
        )
        if not model_name:
            return fallback, "Model name is required. Set LM_MODEL_NAME environment variable."

        thinking_level = DEFAULT_THINKING_LEVEL
        thinking_level_raw = _first_defined_env(["NETLIFY_GEMINI_THINKING_LEVEL", "GEMINI_THINKING_LEVEL"])
        if thinking_level_raw:
            if thinking_level_raw not in THINKING_LEVELS:
                return fallback, INVALID_THINKING_LEVEL_MESSAGE
            thinking_level = thinking_level_raw

        max_tokens = DEFAULT_BATCH_TOKENS
        batch_tokens_raw = _first_defined_env(["NETLIFY_GEMINI_BATCH_TOKENS", "GEMINI_BATCH_TOKENS"])
        if batch_tokens_raw:
            try:
                max_tokens = int(batch_tokens_raw)
            except ValueError:
                return fallback, INVALID_BATCH_TOKENS_MESSAGE
            if not MIN_BATCH_TOKENS <= max_tokens <= MAX_BATCH_TOKENS:
                return fallback, INVALID_BATCH_TOKENS_MESSAGE

        try:
            config = TranslationConfig(
                model_name=model_name,
                max_tokens_per_batch=max_tokens,
                thinking_level=thinking_level,
                provider=provider,
                api_key=api_key,
                api_base_url=base_url,
                request_timeout=float(os.getenv("TRANSLATION_TIMEOUT", "55")),
                max_retries=int(os.getenv("MAX_RETRIES", "3")),
            )
        except ValueError as e:
            return fallback, f"環境変数の値が無効: {str(e)}"
        except ConfigurationError as e:
            return fallback, e.message

        if not self.validate_url(config.api_base_url):
            self.logger.error(f"無効なAPI URL: {config.api_base_url}")
            return config, f"Invalid API URL: {config.api_base_url}"
        if not self.validate_model_name(config.model_name):
            self.logger.error(f"無効なモデル名: {config.model_name}")
            return config, f"Invalid model name: {config.model_name}"

        return config, None

