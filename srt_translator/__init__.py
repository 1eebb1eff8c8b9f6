"""
SRT字幕バッチ翻訳システム - コアパッケージ

字幕の解析、トークン数に基づくグループ化、翻訳バックエンドとの連携、
翻訳結果の対応付け、ストリームのデコード機能を提供します。
"""

from .config_handler import TranslationConfig, ConfigHandler
from .error_handler import (
    SRTTranslationError,
    SRTParseError,
    ConfigurationError,
    TranslationError,
    BackendTransportError,
    BackendStatusError,
    ShapeMismatchError,
    ExhaustedRetriesError,
    FileError,
    ErrorHandler
)
from .models import Chunk, OutputBlock, RunStatus, Segment
from .pipeline import Run, TranslationPipeline
from .stream_decoder import StreamDecoder, decode_stream, iter_chunks
from .submission import SubmissionResponse, get_config_status, submit_translation

__all__ = [
    'TranslationConfig',
    'ConfigHandler',
    'SRTTranslationError',
    'SRTParseError',
    'ConfigurationError',
    'TranslationError',
    'BackendTransportError',
    'BackendStatusError',
    'ShapeMismatchError',
    'ExhaustedRetriesError',
    'FileError',
    'ErrorHandler',
    'Chunk',
    'OutputBlock',
    'RunStatus',
    'Segment',
    'Run',
    'TranslationPipeline',
    'StreamDecoder',
    'decode_stream',
    'iter_chunks',
    'SubmissionResponse',
    'get_config_status',
    'submit_translation'
]

__version__ = "1.0.0"
