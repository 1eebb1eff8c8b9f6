"""対応付けモジュールのテスト."""

import pytest

from srt_translator.models import Segment
from srt_translator.reconciler import encode_blocks, reconcile, serialize_blocks


@pytest.fixture
def group():
    return [
        Segment(id=4, timestamp="00:00:01,000 --> 00:00:02,000", text="Hello"),
        Segment(id=5, timestamp="00:00:03,000 --> 00:00:04,000", text="- Hi\n- Bye"),
    ]


def test_reconcile_keeps_ids_and_timestamps(group):
    blocks = reconcile(group, ["Hola", "- Hola\n- Adiós"])

    assert [b.id for b in blocks] == [4, 5]
    assert [b.timestamp for b in blocks] == [s.timestamp for s in group]
    assert blocks[1].text == "- Hola\n- Adiós"


def test_reconcile_trims_translations(group):
    blocks = reconcile(group, ["  Hola \n", "Adiós"])
    assert blocks[0].text == "Hola"


def test_reconcile_collapses_blank_lines(group):
    blocks = reconcile(group, ["Hola", "- Hola\n\n  \n- Adiós  "])
    assert blocks[1].text == "- Hola\n- Adiós"


def test_reconcile_rejects_count_mismatch(group):
    with pytest.raises(ValueError):
        reconcile(group, ["only one"])


def test_serialize_and_encode(group):
    blocks = reconcile(group, ["Hola", "Adiós"])

    expected = (
        "4\n00:00:01,000 --> 00:00:02,000\nHola\n\n"
        "5\n00:00:03,000 --> 00:00:04,000\nAdiós\n\n"
    )
    assert serialize_blocks(blocks) == expected
    assert encode_blocks(blocks) == expected.encode("utf-8")
