"""トークン数の上限に基づいて字幕セグメントをグループ化するモジュール."""

import math
from typing import List, Sequence

from .models import Segment

DEFAULT_CHARS_PER_TOKEN = 4
DELIMITER_TOKEN_COST = 1


def estimate_token_count(text: str) -> int:
    """
    テキストのトークン数を概算.

    実際のトークナイズではなく、グループ分けのための安定した近似値。

    Args:
        text: 対象テキスト

    Returns:
        概算トークン数（最小1）
    """
    return max(1, math.ceil(len(text) / DEFAULT_CHARS_PER_TOKEN))


def group_token_count(group: Sequence[Segment]) -> int:
    """グループ全体の概算トークン数（区切り文字のコストを含む）."""
    if not group:
        return 0
    return sum(estimate_token_count(segment.text) for segment in group) + DELIMITER_TOKEN_COST * (len(group) - 1)


def group_segments_by_token_length(segments: Sequence[Segment], max_tokens: int) -> List[List[Segment]]:
    """
    字幕セグメントを概算トークン数の上限内に収まるグループに分割.

    セグメントの順序は変更せず、1つのセグメントを複数のグループに
    分割することもない。単体で上限以上のセグメントは単独のグループになる。

    Args:
        segments: 文書順のセグメント
        max_tokens: 1グループあたりの最大トークン数

    Returns:
        文書順のグループのリスト
    """
    max_tokens_per_group = max(1, max_tokens)
    groups: List[List[Segment]] = []
    current_group: List[Segment] = []
    current_token_count = 0

    for segment in segments:
        segment_token_count = estimate_token_count(segment.text)

        if segment_token_count >= max_tokens_per_group:
            if current_group:
                groups.append(current_group)
                current_group = []
                current_token_count = 0
            groups.append([segment])
            continue

        if current_group:
            projected = current_token_count + DELIMITER_TOKEN_COST + segment_token_count
        else:
            projected = segment_token_count

        if projected <= max_tokens_per_group:
            current_group.append(segment)
            current_token_count = projected
            continue

        if current_group:
            groups.append(current_group)
        current_group = [segment]
        current_token_count = segment_token_count

    if current_group:
        groups.append(current_group)

    return groups
