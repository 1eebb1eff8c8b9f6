"""ストリームデコーダのテスト."""

import random

import pytest

from srt_translator.stream_decoder import StreamDecoder, decode_stream, iter_chunks

DOCUMENT = (
    "1\n00:00:01,000 --> 00:00:02,000\nHola\n\n"
    "2\n00:00:03,000 --> 00:00:04,500\n- ¿Vienes?\n- Sí, espérame.\n\n"
    "3\n00:00:05.000 --> 00:00:06.000\n日本語の字幕\n\n"
    "4\r\n00:00:07,000 --> 00:00:08,000\r\nÚltimo\r\n\r\n"
)


def chunk_tuples(chunks):
    return [(c.index, c.start, c.end, c.text) for c in chunks]


def split_at(data, offsets):
    pieces = []
    previous = 0
    for offset in sorted(offsets):
        pieces.append(data[previous:offset])
        previous = offset
    pieces.append(data[previous:])
    return pieces


class TestStreamDecoder:
    """StreamDecoder のテスト."""

    def test_whole_document(self):
        chunks = list(iter_chunks([DOCUMENT]))

        assert chunk_tuples(chunks) == [
            (1, "00:00:01,000", "00:00:02,000", "Hola"),
            (2, "00:00:03,000", "00:00:04,500", "- ¿Vienes?\n- Sí, espérame."),
            (3, "00:00:05.000", "00:00:06.000", "日本語の字幕"),
            (4, "00:00:07,000", "00:00:08,000", "Último"),
        ]

    def test_complete_block_is_emitted_immediately(self):
        """区切りの空行が届いた時点でチャンクが出力される."""
        decoder = StreamDecoder()

        assert decoder.feed("1\n00:00:01,000 --> 00:00:02,000\nHo") == []
        assert decoder.feed("la\n") == []
        chunks = decoder.feed("\n2\n00:00")

        assert chunk_tuples(chunks) == [(1, "00:00:01,000", "00:00:02,000", "Hola")]
        assert decoder.count == 1

    def test_trailing_block_without_separator(self):
        """末尾に空行がないブロックは終了時に出力される."""
        decoder = StreamDecoder()
        assert decoder.feed("5\n00:00:01,000 --> 00:00:02,000\nEnd") == []

        chunks = decoder.finish()

        assert chunk_tuples(chunks) == [(5, "00:00:01,000", "00:00:02,000", "End")]

    def test_invalid_blocks_are_skipped(self):
        chunks = list(iter_chunks(["garbage\n\n", "   \n\n", "1\n00:00:01,000 --> 00:00:02,000\n\n"]))
        assert chunks == []

    def test_missing_index_uses_running_count(self):
        chunks = list(iter_chunks(["00:00:01,000 --> 00:00:02,000\nA\n\n00:00:03,000 --> 00:00:04,000\nB"]))
        assert [c.index for c in chunks] == [1, 2]

    def test_content_is_accumulated(self):
        decoder = StreamDecoder()
        list(iter_chunks(split_at(DOCUMENT, [7, 40, 90]), decoder))
        assert decoder.content == DOCUMENT

    def test_arbitrary_text_splits_match_whole(self):
        """任意の位置で分割しても同じチャンク列になる."""
        expected = chunk_tuples(iter_chunks([DOCUMENT]))
        rng = random.Random(42)

        for _ in range(200):
            offsets = rng.sample(range(1, len(DOCUMENT)), rng.randint(1, 12))
            assert chunk_tuples(iter_chunks(split_at(DOCUMENT, offsets))) == expected

    def test_every_single_split_point_matches_whole(self):
        """区切りの途中や行の途中を含む全ての分割位置."""
        expected = chunk_tuples(iter_chunks([DOCUMENT]))

        for offset in range(1, len(DOCUMENT)):
            assert chunk_tuples(iter_chunks(split_at(DOCUMENT, [offset]))) == expected

    def test_arbitrary_byte_splits_match_whole(self):
        """マルチバイト文字の途中でバイト列が分割されても正しくデコードされる."""
        data = DOCUMENT.encode("utf-8")
        expected = chunk_tuples(iter_chunks([DOCUMENT]))
        rng = random.Random(7)

        for _ in range(200):
            offsets = rng.sample(range(1, len(data)), rng.randint(1, 20))
            assert chunk_tuples(iter_chunks(split_at(data, offsets))) == expected

        for offset in range(1, len(data)):
            assert chunk_tuples(iter_chunks(split_at(data, [offset]))) == expected


@pytest.mark.asyncio
async def test_decode_stream_async():
    """非同期イテレータからのデコード."""
    data = DOCUMENT.encode("utf-8")

    async def fragments():
        for piece in split_at(data, [3, 50, 51, 120]):
            yield piece

    decoder = StreamDecoder()
    chunks = [chunk async for chunk in decode_stream(fragments(), decoder)]

    assert [c.index for c in chunks] == [1, 2, 3, 4]
    assert decoder.count == 4
    assert decoder.content == DOCUMENT
