"""
翻訳ストリームのデコードモジュール

任意の位置で分割されて届くテキスト（またはバイト列）から、
完成したSRTブロックを逐次取り出してチャンクとして返す。
"""

import codecs
from typing import AsyncIterable, AsyncIterator, Iterable, Iterator, List, Optional, Union

from .models import Chunk
from .srt_parser import BLOCK_SEPARATOR, parse_segment, parse_timestamp

Fragment = Union[str, bytes]


class StreamDecoder:
    """フラグメント境界に依存せずにSRTブロックをデコードするクラス

    Attributes:
        count (int): これまでに出力したチャンク数
        content (str): これまでに受信したテキスト全体
    """

    def __init__(self, encoding: str = "utf-8"):
        self._bytes_decoder = codecs.getincrementaldecoder(encoding)()
        self._pending = ""
        self._parts: List[str] = []
        self.count = 0

    @property
    def content(self) -> str:
        return "".join(self._parts)

    def feed(self, fragment: Fragment) -> List[Chunk]:
        """
        フラグメントを追加し、完成したブロックのチャンクを返す

        Args:
            fragment: 受信したテキストまたはバイト列

        Returns:
            List[Chunk]: このフラグメントで完成したチャンク（0件の場合もある）
        """
        if isinstance(fragment, bytes):
            text = self._bytes_decoder.decode(fragment)
        else:
            text = fragment
        if not text:
            return []

        self._parts.append(text)
        pieces = BLOCK_SEPARATOR.split(self._pending + text)
        # 最後の要素は未完成の可能性があるため保留する
        self._pending = pieces.pop()

        chunks = []
        for piece in pieces:
            chunk = self._parse_block(piece)
            if chunk is not None:
                chunks.append(chunk)
        return chunks

    def finish(self) -> List[Chunk]:
        """ストリーム終了時に保留中のブロックを処理する"""
        tail = self._bytes_decoder.decode(b"", final=True)
        if tail:
            self._parts.append(tail)
            self._pending += tail

        pending, self._pending = self._pending, ""
        chunk = self._parse_block(pending)
        return [chunk] if chunk is not None else []

    def _parse_block(self, block: str) -> Optional[Chunk]:
        block = block.strip()
        if not block:
            return None

        segment = parse_segment(block)
        if not segment.timestamp or not segment.text:
            return None

        start, end = parse_timestamp(segment.timestamp)
        index = segment.id if segment.id is not None else self.count + 1
        self.count += 1
        return Chunk(index=index, start=start, end=end, text=segment.text)


def iter_chunks(fragments: Iterable[Fragment], decoder: Optional[StreamDecoder] = None) -> Iterator[Chunk]:
    """同期イテラブルのフラグメントからチャンクを順に取り出す"""
    decoder = decoder or StreamDecoder()
    for fragment in fragments:
        yield from decoder.feed(fragment)
    yield from decoder.finish()


async def decode_stream(
    fragments: AsyncIterable[Fragment],
    decoder: Optional[StreamDecoder] = None
) -> AsyncIterator[Chunk]:
    """非同期ストリームのフラグメントからチャンクを順に取り出す

    Args:
        fragments: バイト列またはテキストの非同期イテラブル
        decoder: 受信内容を参照したい場合に渡すデコーダ

    Yields:
        Chunk: 完成したブロックごとのチャンク
    """
    decoder = decoder or StreamDecoder()
    async for fragment in fragments:
        for chunk in decoder.feed(fragment):
            yield chunk
    for chunk in decoder.finish():
        yield chunk
