"""テスト共通のフィクスチャ."""

import pytest

CONFIG_ENV_KEYS = [
    "GOOGLE_GENERATIVE_AI_API_KEY",
    "TRANSLATION_PROVIDER",
    "NETLIFY_GEMINI_MODEL_NAME",
    "GEMINI_MODEL_NAME",
    "NETLIFY_GEMINI_THINKING_LEVEL",
    "GEMINI_THINKING_LEVEL",
    "NETLIFY_GEMINI_BATCH_TOKENS",
    "GEMINI_BATCH_TOKENS",
    "GEMINI_API_URL",
    "LM_STUDIO_URL",
    "LM_MODEL_NAME",
    "LM_API_KEY",
    "TRANSLATION_TIMEOUT",
    "MAX_RETRIES",
]


@pytest.fixture
def clean_env(monkeypatch):
    """設定に関わる環境変数をすべて取り除く."""
    for key in CONFIG_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch
