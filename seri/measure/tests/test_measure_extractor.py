from __future__ import annotations

from typing import List, Tuple, Union

import pytest

from seri.measure.extractor import (
    LayoutTokenizer,
    StreamTokenizer,
    extract_measurements,
    get_tokenizer,
    parse_measurements,
    parse_measurements_with_profile,
)
from seri.profiles import DocumentProfile
from seri.schema import AbsentEntry, MeasuredEntry

# ---------------------------
# Test helpers
# ---------------------------

Row = Union[Tuple[int, int, int, float], Tuple[int, str]]


def _stream_text(rows: List[Row]) -> str:
    """Render rows the way pdftotext (reading order) prints the sheet."""
    lines = ["2025 サマーセール 測尺表", "上場番号", "", "（cm） （cm） （cm）", ""]
    lines += [str(r[0]) for r in rows]
    lines.append("")
    for r in rows:
        if len(r) == 2:
            lines.append(r[1])
        else:
            lines += [str(r[1]), str(r[2]), str(r[3])]
    return "\n".join(lines) + "\n"


def _layout_text(rows: List[Row]) -> str:
    """Render rows the way pdftotext -layout prints the sheet."""
    lines = ["            2025 サマーセール 測尺表", "  上場番号    体高    胸囲    管囲"]
    for r in rows:
        if len(r) == 2:
            lines.append(f"  {r[0]:>4}    {r[1]}")
        else:
            lines.append(f"  {r[0]:>4}    {r[1]}    {r[2]}    {r[3]}")
    return "\n".join(lines) + "\n"


def _tuples(entries):
    return [(e.lot_number, e.height, e.girth, e.cannon) for e in entries]


# ---------------------------
# Stream mode
# ---------------------------


def test_concrete_scenario_with_absent_lot():
    text = "番号\n\n1\n2\n3\n\n156\n157\n151\n157\n欠場\n151\n157\n151"
    res = parse_measurements(text)

    assert res.header_found
    assert res.lot_numbers == [1, 2, 3]
    assert res.entries == [
        MeasuredEntry(lot_number=1, height=156, girth=157, cannon=151),
        AbsentEntry(lot_number=2),
        MeasuredEntry(lot_number=3, height=151, girth=157, cannon=151),
    ]
    absent = res.entries[1]
    assert absent.status == "absent"
    assert (absent.height, absent.girth, absent.cannon) == (None, None, None)


@pytest.mark.parametrize("start,count", [(1, 5), (66, 4), (120, 1)])
def test_sequential_run_yields_one_entry_per_lot(start, count):
    rows = [(start + i, 150 + i, 170 + i, 19.5) for i in range(count)]
    entries = extract_measurements(_stream_text(rows))

    assert [e.lot_number for e in entries] == list(range(start, start + count))
    assert all(e.status == "measured" for e in entries)
    assert _tuples(entries) == [(r[0], r[1], r[2], r[3]) for r in rows]


def test_absent_marker_consumes_exactly_one_line():
    rows = [(1, "欠場"), (2, 155, 178, 20.0), (3, "欠場"), (4, 160, 181, 20.5)]
    entries = extract_measurements(_stream_text(rows))

    assert [e.status for e in entries] == ["absent", "measured", "absent", "measured"]
    assert _tuples(entries)[1] == (2, 155, 178, 20.0)
    assert _tuples(entries)[3] == (4, 160, 181, 20.5)


def test_parsing_is_idempotent():
    text = _stream_text([(1, 156, 183, 21.0), (2, "欠場"), (3, 150, 168, 18.5)])
    first = parse_measurements(text)
    second = parse_measurements(text)
    assert first.entries == second.entries
    assert first.lot_numbers == second.lot_numbers
    assert first.to_jsonable() == second.to_jsonable()


def test_blank_lines_inside_the_lot_run_are_ignored():
    text = "番号\n1\n\n2\n\n\n3\n160\n180\n20.0\n161\n181\n20.1\n162\n182\n20.2\n"
    res = parse_measurements(text)
    assert res.lot_numbers == [1, 2, 3]
    assert [e.lot_number for e in res.entries] == [1, 2, 3]


def test_text_before_first_numeric_line_is_skipped():
    text = "上場番号\n体高\n胸囲\n管囲\n10\n11\n150\n170\n19.0\n151\n171\n19.1\n"
    res = parse_measurements(text)
    assert res.lot_numbers == [10, 11]
    assert _tuples(res.entries) == [(10, 150, 170, 19.0), (11, 151, 171, 19.1)]


def test_lot_number_zero_is_skipped_without_raising():
    text = "番号\n0\n1\n156\n157\n20.5\n欠場\n"
    res = parse_measurements(text)

    assert res.lot_numbers == [0, 1]
    assert res.entries == [AbsentEntry(lot_number=1)]
    assert [(s.reason, s.lot_number) for s in res.skipped] == [("bad_lot_number", 0)]
    assert res.skipped[0].detail == "156 157 20.5"


def test_lot_number_zero_absent_consumes_one_line():
    res = parse_measurements("番号\n00\n1\n欠場\n150\n170\n19.0\n")
    assert _tuples(res.entries) == [(1, 150, 170, 19.0)]
    assert res.skipped[0].reason == "bad_lot_number"


def test_terminator_line_ends_the_data_section():
    # lot 3 is in the lot column but its values sit after the price section
    text = "番号\n1\n2\n3\n156\n183\n21.0\n157\n175\n19.0\n販売希望価格\n150\n168\n18.5\n"
    res = parse_measurements(text)

    assert [e.lot_number for e in res.entries] == [1, 2]
    assert res.missing == 1


@pytest.mark.parametrize("marker", ["販売希望", "価格", "レポジトリー"])
def test_each_default_terminator_is_recognised(marker):
    text = f"番号\n1\n2\n160\n180\n20.0\n{marker}について\n161\n181\n20.1\n"
    res = parse_measurements(text)
    assert [e.lot_number for e in res.entries] == [1]


def test_missing_header_returns_empty_result_without_raising():
    text = "1\n2\n156\n183\n21.0\n157\n175\n19.0\n"
    res = parse_measurements(text)
    assert res.entries == []
    assert not res.header_found
    assert "header_not_found" in res.issues


def test_header_without_lot_numbers_returns_empty_result():
    res = parse_measurements("番号\n体高\n胸囲\n")
    assert res.header_found
    assert res.entries == []
    assert res.issues == ["lot_run_not_found"]


def test_empty_text():
    assert extract_measurements("") == []


def test_data_running_out_leaves_remaining_lots_missing():
    text = "番号\n1\n2\n3\n4\n150\n170\n19.0\n欠場\n"
    res = parse_measurements(text)
    assert [e.lot_number for e in res.entries] == [1, 2]
    assert res.missing == 2


def test_broken_triple_is_skipped_and_recorded():
    # lot 2's girth is unreadable; the line is dropped and lot 2 is retried
    text = "番号\n1\n2\n3\n150\n170\n19.0\n151\n???\n152\n172\n19.2\n欠場\n"
    res = parse_measurements(text)

    assert _tuples(res.entries)[0] == (1, 150, 170, 19.0)
    assert res.skipped
    assert all(s.reason == "broken_triple" for s in res.skipped)
    assert res.skipped[0].lot_number == 2
    # no partial triple is ever emitted
    for e in res.entries:
        assert e.status == "absent" or None not in (e.height, e.girth, e.cannon)


def test_non_numeric_first_value_is_skipped():
    text = "番号\n1\n2\n※\n150\n170\n19.0\n151\n171\n19.1\n"
    res = parse_measurements(text)
    assert _tuples(res.entries) == [(1, 150, 170, 19.0), (2, 151, 171, 19.1)]
    assert len(res.skipped) == 1


def test_known_fragile_boundary_absorbs_a_continuing_value():
    # Split document covering lots 148-149. The first height (150) happens to
    # continue the lot sequence, so the run swallows it.
    # The lot-count hint below avoids it.
    rows = [(148, 150, 170, 19.5), (149, 152, 175, 20.0)]
    text = _stream_text(rows)

    res = parse_measurements(text)
    assert res.lot_numbers == [148, 149, 150]
    # the values slide: lot 148 ends up with lot 149's triple
    assert _tuples(res.entries) == [(148, 152, 175, 20.0)]
    assert res.missing == 2

    hinted = parse_measurements(text, expected_lots=2)
    assert hinted.lot_numbers == [148, 149]
    assert _tuples(hinted.entries) == [(148, 150, 170, 19.5), (149, 152, 175, 20.0)]


def test_custom_markers():
    text = "No.\n1\n2\nABS\n150\n170\n19.0\nPRICE LIST\n"
    res = parse_measurements(
        text, header_markers=("No.",), terminators=("PRICE",), absent_marker="ABS"
    )
    assert [e.status for e in res.entries] == ["absent", "measured"]


# ---------------------------
# Layout mode
# ---------------------------


def test_layout_rows_are_parsed():
    text = """
      1   156   183   21.0
      2   157   175   19.0
      3   欠場
      4   150   168   18.5
    """
    entries = extract_measurements(text, mode="layout")
    assert _tuples(entries) == [
        (1, 156, 183, 21.0),
        (2, 157, 175, 19.0),
        (3, None, None, None),
        (4, 150, 168, 18.5),
    ]
    assert entries[2].status == "absent"


def test_layout_handles_gaps_and_large_lot_numbers():
    text = "番号\n  100   156   183   21.0\n  246   157   175   19.0\n"
    entries = extract_measurements(text, mode="layout")
    assert [e.lot_number for e in entries] == [100, 246]


def test_layout_stops_at_terminator_and_ignores_noise():
    text = (
        "上場番号 体高 胸囲 管囲\n"
        "   1   156   183   21.0\n"
        "  ページ 1/2\n"
        "   2   157   175   19.0\n"
        "販売希望価格\n"
        "   3   500   600   7.0\n"
    )
    res = parse_measurements(text, mode="layout")
    assert res.header_found
    assert [e.lot_number for e in res.entries] == [1, 2]


def test_layout_without_header_still_reads_rows():
    res = parse_measurements("  7   150   170   19.0\n", mode="layout")
    assert not res.header_found
    assert "header_not_found" in res.issues
    assert _tuples(res.entries) == [(7, 150, 170, 19.0)]


def test_layout_partial_row_is_recorded_as_skipped():
    text = "番号\n1  156  157  20.5\n2  156  157\n3  欠場\n4  156  abc  20.5\n"
    res = parse_measurements(text, mode="layout")

    assert res.lot_numbers == [1, 3]
    assert [(s.reason, s.lot_number) for s in res.skipped] == [
        ("broken_triple", 2),
        ("broken_triple", 4),
    ]
    assert res.skipped[0].detail == "2  156  157"


def test_layout_and_stream_modes_agree():
    rows = [
        (1, 156, 183, 21.0),
        (2, "欠場"),
        (3, 150, 168, 18.5),
        (4, 160, 190, 20.5),
        (5, "欠場"),
    ]
    stream = extract_measurements(_stream_text(rows), mode="stream")
    layout = extract_measurements(_layout_text(rows), mode="layout")
    assert set(_tuples(stream)) == set(_tuples(layout))
    assert len(stream) == len(rows)


# ---------------------------
# Strategy selection
# ---------------------------


def test_get_tokenizer():
    assert isinstance(get_tokenizer("stream"), StreamTokenizer)
    assert isinstance(get_tokenizer("layout"), LayoutTokenizer)
    with pytest.raises(ValueError):
        get_tokenizer("ocr")


def test_profile_options_and_overrides():
    prof = DocumentProfile(mode="layout", absent_marker="欠")
    res = parse_measurements_with_profile("番号\n  1   欠\n", prof)
    assert [e.status for e in res.entries] == ["absent"]

    stream = parse_measurements_with_profile(
        "番号\n1\n欠\n", prof, mode="stream", expected_lots=None
    )
    assert [e.status for e in stream.entries] == ["absent"]
