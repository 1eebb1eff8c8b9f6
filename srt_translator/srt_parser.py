"""
SRTファイルの解析と生成を行うモジュール

このモジュールはSRT (SubRip) 形式の字幕ドキュメントを解析し、
字幕セグメントとして管理し、再びSRT形式で出力する機能を提供する。
"""

import re
import chardet
from typing import List, Optional, Tuple

from .error_handler import FileError
from .models import Segment, TIMESTAMP_PATTERN


# 空行（空白のみの行やCRLFを含む）でブロックを区切る
BLOCK_SEPARATOR = re.compile(r'\r?\n\s*\r?\n')

LINE_SEPARATOR = re.compile(r'\r\n|\n')

# 既知の言語サフィックスと対応する言語名
LANGUAGE_SUFFIXES = {
    "English": ".eng",
    "Spanish (Spain)": ".spa",
    "Portuguese (Portugal)": ".pop",
}


def parse_timestamp(timestamp: str) -> Tuple[str, str]:
    """タイムスタンプ行を開始時刻と終了時刻に分割する

    Args:
        timestamp (str): ``HH:MM:SS,mmm --> HH:MM:SS,mmm`` 形式の文字列

    Returns:
        Tuple[str, str]: (開始時刻, 終了時刻)。形式が不正な場合は空文字列
    """
    match = TIMESTAMP_PATTERN.match(timestamp)
    if not match:
        return "", ""
    return match.group(1), match.group(2)


def parse_segment(block: str) -> Segment:
    """1ブロック分のテキストを字幕セグメントに変換する

    最初にタイムスタンプ形式に一致した行を基準とし、それより前の
    最初の空でない行を番号、それより後をテキストとして扱う。

    Args:
        block (str): 字幕1件分のテキスト

    Returns:
        Segment: 解析結果。タイムスタンプが見つからない場合は無効なセグメント
    """
    lines = LINE_SEPARATOR.split(block)

    timestamp_index = None
    for i, line in enumerate(lines):
        if TIMESTAMP_PATTERN.match(line):
            timestamp_index = i
            break

    if timestamp_index is None:
        return Segment(id=None, timestamp="", text="")

    segment_id = None
    for line in lines[:timestamp_index]:
        candidate = line.strip()
        if not candidate:
            continue
        try:
            segment_id = int(candidate)
        except ValueError:
            segment_id = None
        break

    text_lines = [line.strip() for line in lines[timestamp_index + 1:]]
    # 前後の空行のみ除去し、内部の改行は保持する
    while text_lines and not text_lines[0]:
        text_lines.pop(0)
    while text_lines and not text_lines[-1]:
        text_lines.pop()

    return Segment(
        id=segment_id,
        timestamp=lines[timestamp_index].strip(),
        text="\n".join(text_lines),
    )


def split_blocks(content: str) -> List[str]:
    """ドキュメントを空行区切りのブロックに分割する（空ブロックは除外）"""
    return [block for block in BLOCK_SEPARATOR.split(content) if block.strip()]


def parse_document(content: str) -> List[Segment]:
    """SRTドキュメント全体を解析して有効なセグメントのリストを返す

    番号が欠落している、または正の整数でないセグメントは、有効な
    セグメント内での1始まりの位置に振り直す。

    Args:
        content (str): SRT形式の文字列

    Returns:
        List[Segment]: 有効なセグメント（元の順序を保持）
    """
    valid_segments = [
        segment for segment in (parse_segment(block) for block in split_blocks(content))
        if segment.is_valid()
    ]

    normalized = []
    for position, segment in enumerate(valid_segments, 1):
        if segment.id is None or segment.id <= 0:
            segment = segment.model_copy(update={'id': position})
        normalized.append(segment)

    return normalized


def build_output_filename(filename: str, language: str) -> str:
    """翻訳後のファイル名を生成する

    既知の言語サフィックス（.eng / .spa / .pop）を取り除いた上で、
    翻訳先言語のサフィックスを付与する。カスタム言語の場合は付与しない。

    Args:
        filename (str): 元のファイル名
        language (str): 翻訳先の言語名

    Returns:
        str: 出力ファイル名
    """
    base_name = re.sub(r'\.srt$', '', filename, flags=re.IGNORECASE)

    for suffix in LANGUAGE_SUFFIXES.values():
        if base_name.lower().endswith(suffix):
            base_name = base_name[:-len(suffix)]
            break

    return f"{base_name}{LANGUAGE_SUFFIXES.get(language, '')}.srt"


class SRTParser:
    """SRTファイルの読み込み、書き出し、プレビューを行うクラス"""

    def detect_encoding(self, file_path: str) -> str:
        """ファイルのエンコーディングを検出する

        Args:
            file_path (str): ファイルパス

        Returns:
            str: 検出されたエンコーディング（UTF-8を優先）

        Raises:
            FileError: ファイルが存在しない、または読み込めない場合
        """
        try:
            with open(file_path, 'rb') as f:
                raw_data = f.read()
        except FileNotFoundError as e:
            raise FileError(f"ファイルが見つかりません: {file_path}", file_path=file_path, operation="読み込み") from e
        except OSError as e:
            raise FileError(f"ファイルの読み込みエラー: {e}", file_path=file_path, operation="読み込み") from e

        # chardetを使用してエンコーディングを検出
        detected = chardet.detect(raw_data)
        encoding = detected['encoding'] if detected['encoding'] else 'utf-8'

        # UTF-8を優先する
        if encoding.lower() in ['ascii', 'utf-8']:
            return 'utf-8'

        return encoding

    def read_file(self, file_path: str) -> str:
        """SRTファイルを検出したエンコーディングで読み込む

        Raises:
            FileError: ファイル読み込みエラーの場合
        """
        encoding = self.detect_encoding(file_path)

        try:
            with open(file_path, 'r', encoding=encoding) as f:
                return f.read()
        except (OSError, UnicodeDecodeError, LookupError) as e:
            raise FileError(f"ファイルの読み込みエラー: {e}", file_path=file_path, operation="読み込み") from e

    def save_srt(self, content: str, file_path: str, encoding: str = 'utf-8') -> None:
        """SRT形式の文字列をファイルに書き出す

        Args:
            content (str): SRT形式の文字列
            file_path (str): 出力ファイルパス
            encoding (str): 出力ファイルのエンコーディング（デフォルト: utf-8）

        Raises:
            FileError: ファイル書き込みエラーの場合
        """
        try:
            with open(file_path, 'w', encoding=encoding) as f:
                f.write(content)
        except OSError as e:
            raise FileError(f"ファイルの書き込みエラー: {e}", file_path=file_path, operation="書き込み") from e

    def preview(self, content: str, num_entries: int = 5) -> Tuple[int, List[Segment], Optional[List[Segment]]]:
        """先頭と末尾のセグメントを取り出す

        Returns:
            Tuple: (総数, 先頭のセグメント, 末尾のセグメント（総数が少ない場合はNone）)
        """
        segments = parse_document(content)
        head = segments[:num_entries]
        tail = segments[-num_entries:] if len(segments) > num_entries else None
        return len(segments), head, tail
