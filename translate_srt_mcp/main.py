#!/usr/bin/env python3
"""
SRT翻訳MCPサーバー
fastmcpを使用したMCPサーバー実装

使用例:
1. 基本的な翻訳:
   translated = translate_srt(srt_content=content, language="English")

2. ファイルを翻訳して保存:
   result = translate_srt_file(file_path="movie.srt", language="Spanish (Spain)")
   # -> movie.spa.srt
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from fastmcp import FastMCP

from srt_translator import __version__
from srt_translator.config_handler import ConfigHandler
from srt_translator.error_handler import ErrorHandler, FileError
from srt_translator.srt_parser import SRTParser, build_output_filename, parse_timestamp
from srt_translator.stream_decoder import StreamDecoder, decode_stream
from srt_translator.submission import get_config_status, submit_translation

# ログ設定
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastMCPサーバーインスタンスを作成
mcp = FastMCP(
    "translate-srt",
    instructions="SRT字幕をバッチ単位でLLMに送信して翻訳するMCPサーバー。タイムスタンプと字幕番号は保持されます。"
)

config_handler = ConfigHandler()
error_handler = ErrorHandler(__name__)

# 翻訳統計を保持（ランの状態はラン単位で独立しており、ここには集計値のみを持つ）
translation_stats = {
    "total_translations": 0,
    "total_characters": 0,
    "total_subtitles": 0,
    "last_translation": None,
    "errors": 0
}


async def run_translation(
    srt_content: str,
    language: str,
    headers: Optional[Mapping[str, str]] = None
) -> str:
    """
    翻訳ランを実行し、ストリームを受信して完成したSRT文字列を返す

    Args:
        srt_content: 翻訳対象のSRT形式テキスト
        language: 翻訳先の言語
        headers: トレース用ヘッダー

    Returns:
        str: 翻訳済みのSRT形式データ

    Raises:
        ValueError: リクエストが不正、または有効な字幕がない場合
        RuntimeError: 設定エラー、または翻訳処理が失敗した場合
    """
    translation_stats["total_translations"] += 1
    translation_stats["last_translation"] = datetime.now().isoformat()

    response = await submit_translation(
        {"content": srt_content, "language": language},
        headers,
        config_handler=config_handler
    )

    if not response.ok:
        translation_stats["errors"] += 1
        message = response.error["error"]
        logger.error(f"Translation rejected ({response.status_code}): {message}")
        if response.status_code == 400:
            raise ValueError(message)
        raise RuntimeError(message)

    run = response.run
    decoder = StreamDecoder()
    try:
        async for chunk in decode_stream(response.body, decoder):
            run.progress.record_chunk()
            logger.info(
                f"[translate][{run.run_id}] Segment {chunk.index} received "
                f"({run.progress.translated_segments}/{run.progress.total_segments}, "
                f"{run.progress.percent_complete}%)"
            )
    except Exception as e:
        translation_stats["errors"] += 1
        message = error_handler.handle_error(e, {"run_id": run.run_id, **run.progress.snapshot()})
        # 途中までの結果は返さない
        raise RuntimeError(message) from e
    finally:
        await response.aclose()

    translation_stats["total_characters"] += len(srt_content)
    translation_stats["total_subtitles"] += run.progress.translated_segments

    logger.info(f"Translation completed successfully: {run.progress.snapshot()}")
    return decoder.content


@mcp.tool(
    description="""SRT字幕テキストを指定した言語に翻訳してSRT形式のデータを返す。

注意事項:
- GOOGLE_GENERATIVE_AI_API_KEY（またはLM Studio設定）が必要です
- 字幕はトークン数に基づいてバッチに分割され、順番に翻訳されます
- タイムスタンプと字幕番号は保持されます
- 失敗した場合、途中までの結果は返されません"""
)
async def translate_srt(srt_content: str, language: str) -> str:
    """
    SRT字幕テキストを翻訳してSRT形式のデータを返す

    Args:
        srt_content: 翻訳対象のSRT形式テキスト
        language: 翻訳先の言語（例: "English", "Spanish (Spain)"、任意の言語名）

    Returns:
        str: 翻訳結果のSRT形式データ
    """
    return await run_translation(srt_content, language)


@mcp.tool(
    description="""SRTファイルを読み込んで翻訳し、言語サフィックス付きのファイルに保存する。
    例: movie.eng.srt を Spanish (Spain) に翻訳すると movie.spa.srt が作成されます。"""
)
async def translate_srt_file(
    file_path: str,
    language: str,
    output_path: Optional[str] = None
) -> Dict[str, Any]:
    """
    SRTファイルを翻訳して保存

    Args:
        file_path: 入力SRTファイルのパス
        language: 翻訳先の言語
        output_path: 出力ファイルのパス（省略時は入力ファイルと同じディレクトリ）

    Returns:
        dict: 出力ファイルパスと字幕数
    """
    return await translate_file(file_path, language, output_path)


def _file_failure(error: FileError, file_path: str) -> RuntimeError:
    translation_stats["errors"] += 1
    return RuntimeError(error_handler.handle_error(error, {"file_path": file_path}))


async def translate_file(file_path: str, language: str, output_path: Optional[str] = None) -> Dict[str, Any]:
    parser = SRTParser()
    try:
        content = parser.read_file(file_path)
    except FileError as e:
        raise _file_failure(e, file_path) from e

    translated = await run_translation(content, language)

    if output_path is None:
        source = Path(file_path)
        output_path = str(source.with_name(build_output_filename(source.name, language)))

    try:
        parser.save_srt(translated, output_path)
    except FileError as e:
        raise _file_failure(e, output_path) from e
    logger.info(f"Saved translation to {output_path}")

    return {
        "output_path": output_path,
        "characters": len(translated)
    }


@mcp.tool(
    description="翻訳バックエンドの設定状況（APIキー、モデル名、バッチのトークン数）を確認する"
)
async def check_translation_config() -> dict:
    """
    翻訳設定の状況を返す

    Returns:
        dict: ok / message / modelName / maxTokensPerRequest / thinkingLevel / isGemini3Model
    """
    return get_config_status(config_handler)


def build_preview(srt_content: str, num_entries: int = 5) -> Dict[str, Any]:
    """解析済みの字幕から先頭と末尾のプレビューを作る"""
    total, head, tail = SRTParser().preview(srt_content, num_entries)

    if not total:
        return {
            "success": False,
            "error": "No valid SRT entries found",
            "total_entries": 0
        }

    def entry(segment) -> Dict[str, Any]:
        start, end = parse_timestamp(segment.timestamp)
        return {
            "index": segment.id,
            "start": start,
            "end": end,
            "text": segment.text,
            "char_count": len(segment.text)
        }

    preview = {
        "success": True,
        "total_entries": total,
        "preview_entries": {"start": [entry(segment) for segment in head]}
    }
    if tail is not None:
        preview["preview_entries"]["end"] = [entry(segment) for segment in tail]

    return preview


@mcp.tool(
    description="""翻訳前の字幕の簡易プレビューを生成する。
    最初と最後の数個の字幕を表示して内容を確認できます。"""
)
async def preview_srt(srt_content: str, num_entries: int = 5) -> dict:
    """
    SRT字幕のプレビューを生成

    Args:
        srt_content: プレビュー対象のSRT形式テキスト
        num_entries: 表示する字幕の数（開始と終了それぞれ）

    Returns:
        dict: プレビュー結果
    """
    return build_preview(srt_content, num_entries)


@mcp.tool(
    description="サーバー情報と統計を取得"
)
async def get_server_info() -> dict:
    """
    サーバー情報と統計を取得

    Returns:
        dict: サーバーの名前、バージョン、設定、統計情報
    """
    return {
        "name": "translate-srt",
        "version": __version__,
        "description": "Batch SRT subtitle translation MCP server",
        "configuration": get_config_status(config_handler),
        "statistics": translation_stats,
        "capabilities": [
            "SRT format parsing and generation",
            "Token-budgeted batch translation",
            "Preserve ids, timing information and line breaks",
            "Automatic retry with exponential backoff",
            "Gemini and LM Studio backends"
        ]
    }


def main():
    """メインエントリーポイント"""
    # MCPサーバーを起動（stdioトランスポート使用）
    mcp.run()


if __name__ == "__main__":
    main()
