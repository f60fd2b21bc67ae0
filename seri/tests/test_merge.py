from __future__ import annotations

from seri.merge import fold_measurements, merge, merge_with_stats
from seri.schema import AbsentEntry, CatalogEntry, MeasuredEntry, Sex


def _cat(*lots):
    return [CatalogEntry(lot_number=n, sex=Sex.male, sire_name=f"父{n}") for n in lots]


def _m(lot, h=150, g=170, c=19.5):
    return MeasuredEntry(lot_number=lot, height=h, girth=g, cannon=c)


def test_one_record_per_catalog_entry_in_catalog_order():
    catalog = _cat(3, 1, 2)
    records = merge(catalog, [[_m(1), _m(2), _m(3)]])
    assert [r.lot_number for r in records] == [3, 1, 2]
    assert [r.sire_name for r in records] == ["父3", "父1", "父2"]


def test_matched_lots_carry_their_own_values():
    records = merge(_cat(1, 2), [[_m(1, 156, 183, 21.0), _m(2, 150, 168, 18.5)]])
    assert (records[0].height, records[0].girth, records[0].cannon) == (156, 183, 21.0)
    assert (records[1].height, records[1].girth, records[1].cannon) == (150, 168, 18.5)
    assert all(r.measurement_status == "measured" for r in records)


def test_unmeasured_and_absent_lots_have_no_measurements():
    records = merge(_cat(1, 2, 3), [[_m(1), AbsentEntry(lot_number=2)]])

    absent, unmeasured = records[1], records[2]
    assert absent.measurement_status == "absent"
    assert (absent.height, absent.girth, absent.cannon) == (None, None, None)
    assert unmeasured.measurement_status is None
    assert (unmeasured.height, unmeasured.girth, unmeasured.cannon) == (None, None, None)


def test_later_document_wins_on_overlap():
    first = [_m(1, 150), _m(2, 151)]
    second = [_m(2, 160), _m(3, 161)]
    records = merge(_cat(1, 2, 3), [first, second])
    assert [r.height for r in records] == [150, 160, 161]

    # and the other way round
    records = merge(_cat(1, 2, 3), [second, first])
    assert [r.height for r in records] == [150, 151, 161]


def test_orphan_measurements_are_ignored():
    records, stats = merge_with_stats(_cat(1), [[_m(1), _m(99)]])
    assert [r.lot_number for r in records] == [1]
    assert stats.orphan_measurements == 1


def test_stats():
    docs = [[_m(1), AbsentEntry(lot_number=2)], [_m(4)]]
    _, stats = merge_with_stats(_cat(1, 2, 3), docs)
    assert stats.catalog == 3
    assert stats.measurements == 3
    assert stats.matched == 1
    assert stats.absent == 1
    assert stats.unmatched_catalog == 1
    assert stats.orphan_measurements == 1


def test_catalog_fields_are_preserved():
    entry = CatalogEntry(
        lot_number=5,
        sex=Sex.female,
        color="栗毛",
        birth_date="2024/03/01",
        dam_name="母",
        consignor_name="上場者",
        breeder_name="生産者",
        price_estimate=800,
    )
    rec = merge([entry], [[_m(5)]])[0]
    dumped = rec.model_dump()
    for k, v in entry.model_dump().items():
        assert dumped[k] == v


def test_fold_measurements():
    folded = fold_measurements([[_m(1, 150)], [], [_m(1, 155), AbsentEntry(lot_number=2)]])
    assert folded[1].height == 155
    assert folded[2].status == "absent"


def test_empty_inputs():
    assert merge([], [[_m(1)]]) == []
    records = merge(_cat(1), [])
    assert records[0].measurement_status is None
