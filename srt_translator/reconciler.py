"""翻訳結果を元の字幕番号・タイムスタンプに対応付けるモジュール."""

from typing import Iterable, List, Sequence

from .models import OutputBlock, Segment


def _collapse_blank_lines(text: str) -> str:
    # 空行はSRTブロックの区切りになるため字幕テキスト内には残さない
    return "\n".join(line.rstrip() for line in text.strip().splitlines() if line.strip())


def reconcile(group: Sequence[Segment], translated_texts: Sequence[str]) -> List[OutputBlock]:
    """
    グループの各セグメントに翻訳テキストを対応付ける.

    出力はグループの順序をそのまま保持する。

    Args:
        group: 翻訳対象のグループ
        translated_texts: セグメントと同じ順序・同じ件数の翻訳テキスト

    Returns:
        出力ブロックのリスト

    Raises:
        ValueError: 件数が一致しない場合
    """
    if len(group) != len(translated_texts):
        raise ValueError(
            f"翻訳結果の件数が一致しません: expected {len(group)}, received {len(translated_texts)}"
        )

    return [
        OutputBlock(id=segment.id, timestamp=segment.timestamp, text=_collapse_blank_lines(text))
        for segment, text in zip(group, translated_texts)
    ]


def serialize_blocks(blocks: Iterable[OutputBlock]) -> str:
    return "".join(block.to_srt() for block in blocks)


def encode_blocks(blocks: Iterable[OutputBlock]) -> bytes:
    return serialize_blocks(blocks).encode("utf-8")
