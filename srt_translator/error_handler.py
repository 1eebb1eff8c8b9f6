"""
エラーハンドリングモジュール

SRT翻訳システムの例外クラスとエラー処理機能を提供します。
"""

import logging
import traceback
import datetime
from typing import Any, Dict


class SRTTranslationError(Exception):
    """SRT翻訳システムの基底例外クラス"""

    def __init__(self, message: str, error_code: str = None, context: Dict[str, Any] = None):
        """
        初期化

        Args:
            message: エラーメッセージ
            error_code: エラーコード
            context: エラーコンテキスト情報
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = context or {}
        self.timestamp = datetime.datetime.now()


class SRTParseError(SRTTranslationError):
    """SRT解析エラー（有効な字幕セグメントが存在しない場合など）"""

    def __init__(self, message: str, block_count: int = None, file_path: str = None):
        """
        SRT解析エラーの初期化

        Args:
            message: エラーメッセージ
            block_count: 解析対象だったブロック数
            file_path: エラーが発生したファイルパス
        """
        context = {}
        if block_count is not None:
            context['block_count'] = block_count
        if file_path:
            context['file_path'] = file_path

        super().__init__(message, "SRT_PARSE_ERROR", context)


class ConfigurationError(SRTTranslationError):
    """設定エラー（認証情報の欠落や不正な設定値）"""

    def __init__(self, message: str, setting: str = None):
        context = {}
        if setting:
            context['setting'] = setting

        super().__init__(message, "CONFIGURATION_ERROR", context)


class TranslationError(SRTTranslationError):
    """翻訳処理エラー"""

    def __init__(self, message: str, model_name: str = None, api_response: str = None,
                 error_code: str = "TRANSLATION_ERROR", context: Dict[str, Any] = None):
        """
        翻訳処理エラーの初期化

        Args:
            message: エラーメッセージ
            model_name: 使用していたモデル名
            api_response: API応答内容
            error_code: エラーコード
            context: 追加のコンテキスト情報
        """
        context = dict(context or {})
        if model_name:
            context['model_name'] = model_name
        if api_response:
            context['api_response'] = api_response

        super().__init__(message, error_code, context)


class BackendTransportError(TranslationError):
    """バックエンドへの通信エラー（ネットワーク障害・タイムアウト・不正な応答）"""

    def __init__(self, message: str, url: str = None, timeout: float = None, model_name: str = None):
        context = {}
        if url:
            context['url'] = url
        if timeout is not None:
            context['timeout'] = timeout

        super().__init__(message, model_name=model_name,
                         error_code="BACKEND_TRANSPORT_ERROR", context=context)


class BackendStatusError(TranslationError):
    """バックエンドが2xx以外のステータスを返した場合のエラー"""

    def __init__(self, message: str, status_code: int, url: str = None,
                 api_response: str = None, model_name: str = None):
        context = {'status_code': status_code}
        if url:
            context['url'] = url

        super().__init__(message, model_name=model_name, api_response=api_response,
                         error_code="BACKEND_STATUS_ERROR", context=context)
        self.status_code = status_code


class ShapeMismatchError(TranslationError):
    """翻訳結果のセグメント数が期待値と一致しない場合のエラー"""

    def __init__(self, expected: int, received: int):
        super().__init__(
            f"Unexpected translated output shape. Expected {expected} segments, received {received}.",
            error_code="SHAPE_MISMATCH_ERROR",
            context={'expected_segments': expected, 'received_segments': received}
        )
        self.expected = expected
        self.received = received


class ExhaustedRetriesError(TranslationError):
    """リトライ上限に達した場合の終端エラー（最後のエラーを保持する）"""

    def __init__(self, last_error: Exception, attempts: int):
        super().__init__(
            f"Translation failed after {attempts} attempts: {last_error}",
            error_code="EXHAUSTED_RETRIES_ERROR",
            context={'attempts': attempts, 'last_error': last_error.__class__.__name__}
        )
        self.last_error = last_error
        self.attempts = attempts


class FileError(SRTTranslationError):
    """ファイル操作エラー"""

    def __init__(self, message: str, file_path: str = None, operation: str = None):
        """
        ファイル操作エラーの初期化

        Args:
            message: エラーメッセージ
            file_path: 操作対象ファイルパス
            operation: 実行していた操作
        """
        context = {}
        if file_path:
            context['file_path'] = file_path
        if operation:
            context['operation'] = operation

        super().__init__(message, "FILE_ERROR", context)


def to_error_log(error: Any) -> Dict[str, Any]:
    """
    ログ出力用に例外の要約を作成

    Args:
        error: 要約対象の例外（例外以外の値も受け付ける）

    Returns:
        Dict[str, Any]: name / message / status_code / error_code を含む辞書
    """
    if not isinstance(error, BaseException):
        return {'message': str(error)}

    details: Dict[str, Any] = {
        'name': error.__class__.__name__,
        'message': str(error),
    }

    # 原因となった例外のステータスコードも参照する
    cause = error.__cause__
    status_code = getattr(error, 'status_code', None)
    if status_code is None and cause is not None:
        status_code = getattr(cause, 'status_code', None)
    if status_code is not None:
        details['status_code'] = status_code

    if isinstance(error, SRTTranslationError):
        details['error_code'] = error.error_code

    return details


class ErrorHandler:
    """エラー処理クラス"""

    def __init__(self, logger_name: str = __name__):
        """
        初期化

        Args:
            logger_name: ロガー名
        """
        self.logger = logging.getLogger(logger_name)

    def log_error(self, error: Exception, context: Dict[str, Any] = None) -> None:
        """
        エラーをログに記録

        Args:
            error: ログに記録する例外
            context: 追加のコンテキスト情報
        """
        error_info = to_error_log(error)
        error_info['timestamp'] = datetime.datetime.now().isoformat()

        # SRTTranslationErrorの場合は追加情報を含める
        if isinstance(error, SRTTranslationError):
            error_info['error_context'] = error.context

        if context:
            error_info['additional_context'] = context

        if error.__traceback__ is not None:
            error_info['stack_trace'] = ''.join(
                traceback.format_exception(type(error), error, error.__traceback__)
            )

        # エラー種別に応じてログレベルを変える
        if isinstance(error, (ExhaustedRetriesError, ConfigurationError, FileError)):
            self.logger.error(f"重大なエラー: {error_info}")
        elif isinstance(error, (SRTParseError, TranslationError)):
            self.logger.warning(f"処理エラー: {error_info}")
        else:
            self.logger.error(f"未知のエラー: {error_info}")

    def format_user_message(self, error: Exception) -> str:
        """
        ユーザー向けエラーメッセージ生成

        Args:
            error: フォーマット対象の例外

        Returns:
            str: ユーザー向けのエラーメッセージ
        """
        if isinstance(error, SRTParseError):
            base_message = "SRTファイルの解析に失敗しました。有効な字幕が見つかりません。"
            if 'file_path' in error.context:
                base_message += f" (ファイル: {error.context['file_path']})"
            return base_message

        elif isinstance(error, ConfigurationError):
            return f"設定が不正です: {error.message}"

        elif isinstance(error, ExhaustedRetriesError):
            return f"翻訳処理に失敗しました。{error.attempts}回試行しましたが成功しませんでした。"

        elif isinstance(error, BackendStatusError):
            return f"翻訳APIがエラーを返しました。(ステータスコード: {error.status_code})"

        elif isinstance(error, TranslationError):
            base_message = "翻訳処理に失敗しました。"
            if 'model_name' in error.context:
                base_message += f" 使用モデル: {error.context['model_name']}"
            return base_message

        elif isinstance(error, FileError):
            base_message = "ファイル操作に失敗しました。"
            if 'file_path' in error.context:
                base_message += f" ファイル: {error.context['file_path']}"
            if 'operation' in error.context:
                base_message += f" (操作: {error.context['operation']})"
            return base_message

        elif isinstance(error, SRTTranslationError):
            return f"処理中にエラーが発生しました: {error.message}"

        return f"予期しないエラーが発生しました: {str(error)}"

    def handle_error(self, error: Exception, context: Dict[str, Any] = None) -> str:
        """
        エラーの総合的な処理

        Args:
            error: 処理対象の例外
            context: 追加のコンテキスト情報

        Returns:
            str: ユーザー向けメッセージ
        """
        self.log_error(error, context)
        return self.format_user_message(error)
