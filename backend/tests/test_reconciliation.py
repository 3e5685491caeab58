"""
StitchCraft Backend — Reconciliation Unit Tests
================================================

What:  Tests for the pure comparison, resolution and normalization rules.
How:   Plain function calls; no database, no HTTP.

What we test:
    ✅ Comparable keys are sorted and independent of insertion order
    ✅ Differing keys, including keys present on one side only
    ✅ use_client / use_tailor / merge resolution
    ✅ Numeric normalization of stored values, exact for large integers
    ✅ Non-finite numbers never count as measurements
    ✅ Envelope decoding and metadata stripping
    ✅ comparing → resolving → committed workflow
"""

import pytest

from app.exceptions import SyncUnavailableError, ValidationError
from app.services.reconciliation import (
    EnvelopedRecord,
    MeasurementUnit,
    MergeSource,
    RawRecord,
    SyncState,
    SyncStrategy,
    SyncWorkflow,
    compare_records,
    comparable_keys,
    decode_record,
    default_merge_choices,
    differing_keys,
    normalize_value,
    normalize_values,
    parse_unit,
    resolve,
    sync_notes,
)


class TestComparableKeys:

    def test_sorted_union_of_both_sides(self, tailor_measurements, client_measurements):
        assert comparable_keys(tailor_measurements, client_measurements) == ["chest", "hips", "waist"]

    def test_independent_of_insertion_order(self):
        a = {"waist": 30, "chest": 38, "arm": 24}
        b = {"neck": 15, "chest": 39}
        reordered_a = dict(reversed(list(a.items())))
        reordered_b = dict(reversed(list(b.items())))
        assert comparable_keys(a, b) == comparable_keys(reordered_a, reordered_b)
        assert comparable_keys(a, b) == ["arm", "chest", "neck", "waist"]

    def test_non_primitive_values_are_excluded(self):
        tailor = {"chest": 38, "extras": {"left": 1}}
        client = {"chest": 40, "sleeves": [1, 2]}
        assert comparable_keys(tailor, client) == ["chest"]

    def test_both_empty(self):
        assert comparable_keys({}, {}) == []

    def test_non_finite_numbers_are_excluded(self):
        assert comparable_keys({"chest": float("inf")}, {"chest": 40}) == []
        assert comparable_keys({"chest": float("nan")}, {"chest": float("nan")}) == []


class TestDifferingKeys:

    def test_one_sided_presence_counts_as_difference(self, tailor_measurements, client_measurements):
        assert differing_keys(tailor_measurements, client_measurements) == ["chest", "hips"]

    def test_subset_of_comparable_keys(self):
        a = {"chest": 38, "waist": "32", "hips": 40}
        b = {"chest": 38, "waist": 32, "neck": "15"}
        keys = comparable_keys(a, b)
        diff = differing_keys(a, b)
        assert set(diff) <= set(keys)
        # A key differs exactly when the two values are unequal
        for key in keys:
            assert (key in diff) == (a.get(key) != b.get(key))

    def test_string_and_number_are_different_values(self):
        assert differing_keys({"waist": "32"}, {"waist": 32}) == ["waist"]

    def test_identical_maps_have_no_differences(self):
        assert differing_keys({"chest": 38}, {"chest": 38}) == []


class TestResolve:

    def test_use_client_returns_client_values(self, tailor_measurements, client_measurements):
        keys = comparable_keys(tailor_measurements, client_measurements)
        result = resolve("use_client", {"chest": 38, "inseam": 30}, client_measurements, keys)
        assert result == client_measurements
        assert "inseam" not in result

    def test_use_tailor_returns_tailor_values(self, tailor_measurements, client_measurements):
        keys = comparable_keys(tailor_measurements, client_measurements)
        result = resolve(SyncStrategy.USE_TAILOR, tailor_measurements, client_measurements, keys)
        assert result == tailor_measurements

    def test_merge_takes_each_key_from_its_chosen_side(self):
        tailor = {"chest": 38, "waist": 30, "hips": 42}
        client = {"chest": 40, "waist": 32, "hips": 44}
        keys = comparable_keys(tailor, client)
        choices = {"chest": "client", "waist": "tailor", "hips": "client"}
        result = resolve("merge", tailor, client, keys, choices)
        for key, source in choices.items():
            expected = client[key] if source == "client" else tailor[key]
            assert result[key] == expected

    def test_merge_excludes_unresolvable_keys(self, tailor_measurements, client_measurements):
        keys = comparable_keys(tailor_measurements, client_measurements)
        result = resolve(
            "merge",
            tailor_measurements,
            client_measurements,
            keys,
            {"chest": "tailor", "waist": "client"},
        )
        assert result == {"chest": 38, "waist": 32}

    def test_merge_skips_key_missing_on_chosen_side(self, tailor_measurements, client_measurements):
        keys = comparable_keys(tailor_measurements, client_measurements)
        result = resolve("merge", tailor_measurements, client_measurements, keys, {"hips": "tailor"})
        assert result == {}

    def test_merge_output_is_projection_of_keys(self):
        tailor = {"chest": 38}
        client = {"chest": 40, "hips": 44}
        keys = comparable_keys(tailor, client)
        choices = default_merge_choices(keys, client)
        result = resolve("merge", tailor, client, keys, choices)
        assert set(result) <= set(keys)
        assert result == {"chest": 40, "hips": 44}

    def test_unknown_strategy_raises(self):
        with pytest.raises(ValidationError) as exc_info:
            resolve("overwrite", {}, {}, [])
        assert exc_info.value.field == "strategy"

    def test_invalid_merge_choice_raises(self):
        with pytest.raises(ValidationError):
            resolve("merge", {"chest": 38}, {"chest": 40}, ["chest"], {"chest": "both"})


class TestDefaultMergeChoices:

    def test_client_wins_where_defined(self, tailor_measurements, client_measurements):
        keys = comparable_keys(tailor_measurements, client_measurements)
        choices = default_merge_choices(keys, client_measurements)
        assert choices == {
            "chest": MergeSource.CLIENT,
            "hips": MergeSource.CLIENT,
            "waist": MergeSource.CLIENT,
        }

    def test_tailor_when_client_lacks_key(self):
        choices = default_merge_choices(["inseam", "chest"], {"chest": 40})
        assert choices["inseam"] is MergeSource.TAILOR
        assert choices["chest"] is MergeSource.CLIENT


class TestNormalizeValue:

    @pytest.mark.parametrize("raw, expected", [
        ("36", 36),
        ("36.5", 36.5),
        (" 40 ", 40),
        ("36.0", 36),
        ("-2", -2),
    ])
    def test_numeric_strings_become_numbers(self, raw, expected):
        result = normalize_value(raw)
        assert result == expected
        assert not isinstance(result, str)

    def test_whole_number_string_is_int(self):
        assert isinstance(normalize_value("36"), int)

    def test_large_integer_string_is_exact(self):
        result = normalize_value("12345678901234567890")
        assert result == 12345678901234567890
        assert isinstance(result, int)
        assert normalize_value("9007199254740993") == 2**53 + 1

    @pytest.mark.parametrize("raw", ["", "   ", "L", "36cm", "1_000", "nan", "inf", "1e999"])
    def test_other_strings_are_kept(self, raw):
        assert normalize_value(raw) == raw

    def test_numbers_pass_through(self):
        assert normalize_value(38) == 38
        assert normalize_value(38.25) == 38.25

    def test_normalize_values_maps_every_entry(self):
        assert normalize_values({"chest": "38", "size": "L", "note": ""}) == {
            "chest": 38,
            "size": "L",
            "note": "",
        }


class TestDecodeRecord:

    def test_none_decodes_to_empty_raw(self):
        assert decode_record(None) == RawRecord(values={})

    def test_non_mapping_decodes_to_empty_raw(self):
        assert decode_record([1, 2, 3]) == RawRecord(values={})
        assert decode_record("chest=38") == RawRecord(values={})

    def test_raw_map_strips_metadata(self):
        record = decode_record({
            "chest": 38,
            "unit": "CM",
            "updatedAt": "2026-01-01",
            "id": "abc",
            "notes": "hi",
        })
        assert isinstance(record, RawRecord)
        assert record.values == {"chest": 38}

    def test_envelope(self):
        record = decode_record({
            "values": {"chest": 40, "createdAt": "x", "hips": "44"},
            "unit": "INCHES",
            "updatedAt": "2026-10-01T10:00:00Z",
        })
        assert isinstance(record, EnvelopedRecord)
        assert record.values == {"chest": 40, "hips": "44"}
        assert record.unit is MeasurementUnit.INCH
        assert record.updated_at == "2026-10-01T10:00:00Z"

    def test_envelope_with_bad_values_is_treated_as_raw(self):
        record = decode_record({"values": [38, 40], "chest": 38})
        assert isinstance(record, RawRecord)
        assert record.values == {"chest": 38}

    def test_booleans_and_nulls_are_excluded(self):
        record = decode_record({"chest": 38, "verified": True, "hips": None})
        assert record.values == {"chest": 38}

    def test_non_finite_numbers_are_excluded(self):
        record = decode_record({"chest": float("inf"), "waist": float("nan"), "hips": 44.5})
        assert record.values == {"hips": 44.5}

    def test_unit_aliases(self):
        assert parse_unit("cm") is MeasurementUnit.CM
        assert parse_unit("Inches") is MeasurementUnit.INCH
        assert parse_unit("IN") is MeasurementUnit.INCH
        assert parse_unit("furlong") is None
        assert parse_unit(None) is None


class TestCompareRecords:

    def test_mixed_shapes(self, client_measurements):
        comparison = compare_records(
            {"values": {"chest": 38, "waist": 32}, "unit": "INCH"},
            client_measurements,
        )
        assert comparison.keys == ("chest", "hips", "waist")
        assert comparison.differing_keys == ("chest", "hips")
        assert comparison.tailor_unit is MeasurementUnit.INCH
        assert comparison.client_unit is MeasurementUnit.CM
        assert comparison.sync_available
        assert comparison.has_differences

    def test_default_unit_applies_to_tailor_side(self):
        comparison = compare_records({"chest": 38}, {"chest": 40}, default_unit=MeasurementUnit.INCH)
        assert comparison.tailor_unit is MeasurementUnit.INCH
        assert comparison.client_unit is MeasurementUnit.CM

    def test_empty_client_means_sync_unavailable(self):
        comparison = compare_records({"chest": 38}, {"values": {"nested": {"a": 1}}})
        assert not comparison.sync_available
        assert comparison.keys == ("chest",)

    def test_client_updated_at_from_envelope(self):
        comparison = compare_records(None, {"values": {"chest": 40}, "updatedAt": "2026-10-01"})
        assert comparison.client_updated_at == "2026-10-01"
        assert comparison.tailor_values == {}

    def test_infinite_value_counts_as_absent(self):
        comparison = compare_records({"chest": float("inf")}, {"chest": 40})
        assert comparison.tailor_values == {}
        assert comparison.keys == ("chest",)
        assert comparison.differing_keys == ("chest",)

    def test_nan_on_both_sides_is_not_comparable(self):
        comparison = compare_records({"chest": float("nan")}, {"chest": float("nan")})
        assert comparison.keys == ()
        assert not comparison.has_differences
        assert not comparison.sync_available


class TestSyncWorkflow:

    def _workflow(self, tailor, client, **kwargs):
        return SyncWorkflow(compare_records(tailor, client, **kwargs))

    def test_unavailable_without_client_values(self):
        with pytest.raises(SyncUnavailableError):
            self._workflow({"chest": 38}, None)

    def test_starts_comparing(self, tailor_measurements, client_measurements):
        workflow = self._workflow(tailor_measurements, client_measurements)
        assert workflow.state is SyncState.COMPARING
        assert workflow.strategy is None

    def test_use_client_result(self, tailor_measurements):
        workflow = self._workflow(
            tailor_measurements,
            {"values": {"chest": "40", "hips": 44}, "unit": "INCH"},
        )
        workflow.choose("use_client")
        result = workflow.result()
        assert result.values == {"chest": 40, "hips": 44}
        assert result.unit is MeasurementUnit.INCH
        assert result.notes == sync_notes(SyncStrategy.USE_CLIENT)
        assert result.notes == 'Synced from profile using "use_client" strategy'

    def test_use_tailor_is_refused(self, tailor_measurements, client_measurements):
        workflow = self._workflow(tailor_measurements, client_measurements)
        workflow.choose("use_tailor")
        with pytest.raises(ValidationError):
            workflow.result()

    def test_merge_starts_from_default_choices(self, tailor_measurements, client_measurements):
        workflow = self._workflow(tailor_measurements, client_measurements)
        workflow.choose(SyncStrategy.MERGE)
        assert workflow.state is SyncState.RESOLVING
        assert workflow.merge_choices == workflow.comparison.default_merge_choices()
        assert workflow.result().values == client_measurements

    def test_pick_overrides_one_key(self, tailor_measurements, client_measurements):
        workflow = self._workflow(tailor_measurements, client_measurements)
        workflow.choose("merge")
        workflow.pick("chest", "tailor")
        assert workflow.result().values == {"chest": 38, "waist": 32, "hips": 44}

    def test_pick_requires_merge(self, tailor_measurements, client_measurements):
        workflow = self._workflow(tailor_measurements, client_measurements)
        workflow.choose("use_client")
        with pytest.raises(ValidationError):
            workflow.pick("chest", "tailor")

    def test_pick_rejects_unknown_key(self, tailor_measurements, client_measurements):
        workflow = self._workflow(tailor_measurements, client_measurements)
        workflow.choose("merge")
        with pytest.raises(ValidationError):
            workflow.pick("shoe_size", "client")

    def test_pick_before_choose_is_rejected(self, tailor_measurements, client_measurements):
        workflow = self._workflow(tailor_measurements, client_measurements)
        with pytest.raises(ValidationError):
            workflow.pick("chest", "client")

    def test_replace_choices_leaves_out_unchosen_keys(self, tailor_measurements, client_measurements):
        workflow = self._workflow(tailor_measurements, client_measurements)
        workflow.choose("merge")
        workflow.replace_choices({"chest": "tailor", "waist": "client", "bogus": "client"})
        assert workflow.result().values == {"chest": 38, "waist": 32}

    def test_merge_with_no_choices_is_rejected(self, tailor_measurements, client_measurements):
        workflow = self._workflow(tailor_measurements, client_measurements)
        workflow.choose("merge")
        workflow.replace_choices({})
        with pytest.raises(ValidationError) as exc_info:
            workflow.result()
        assert exc_info.value.context["field"] == "merge_choices"
        assert workflow.state is SyncState.RESOLVING

    def test_merge_uses_tailor_unit(self, client_measurements):
        workflow = self._workflow(
            {"values": {"chest": 38}, "unit": "INCH"},
            client_measurements,
        )
        workflow.choose("merge")
        assert workflow.result().unit is MeasurementUnit.INCH

    def test_strategy_can_change_while_resolving(self, tailor_measurements, client_measurements):
        workflow = self._workflow(tailor_measurements, client_measurements)
        workflow.choose("use_tailor")
        workflow.choose("use_client")
        assert workflow.result().strategy is SyncStrategy.USE_CLIENT

    def test_committed_is_terminal(self, tailor_measurements, client_measurements):
        workflow = self._workflow(tailor_measurements, client_measurements)
        workflow.choose("use_client")
        workflow.result()
        workflow.mark_committed()
        assert workflow.state is SyncState.COMMITTED
        with pytest.raises(ValidationError):
            workflow.choose("merge")
        with pytest.raises(ValidationError):
            workflow.result()
