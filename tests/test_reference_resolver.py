"""Tests for reference normalization and resolution."""
import pytest

from app.core.exceptions import ReferenceNotFound, ValidationError
from app.services.reference_resolver import (
    ReferenceResolver, ResolvedReferences, normalize_ids,
)


class TestNormalizeIds:
    @pytest.mark.parametrize("raw,expected", [
        ([5, 7], [5, 7]),
        (["5", "7"], [5, 7]),
        ("[5, 7]", [5, 7]),
        ("5,7", [5, 7]),
        (" 7 , 5 ", [7, 5]),
        (5, [5]),
        ("5", [5]),
        (["[5, 7]"], [5, 7]),
    ])
    def test_accepted_shapes_keep_order(self, raw, expected):
        assert normalize_ids(raw) == expected

    @pytest.mark.parametrize("raw", [[], "", "N/A", '"N/A"', None, "[]"])
    def test_empty_sentinels(self, raw):
        assert normalize_ids(raw) == []

    @pytest.mark.parametrize("raw", ["abc", [0], [-3], "5,x", [True], "[5,"])
    def test_rejects_invalid(self, raw):
        with pytest.raises(ValueError):
            normalize_ids(raw)

    def test_rejects_duplicates(self):
        with pytest.raises(ValueError, match="Duplicate"):
            normalize_ids([5, 7, 5])

    def test_resolver_reports_field(self):
        with pytest.raises(ValidationError) as exc_info:
            ReferenceResolver.normalize_ids("x", "vehicle_ids")
        assert "vehicle_ids" in exc_info.value.fields


class TestResolvedReferences:
    def test_display_summary_counts_extra(self):
        refs = ResolvedReferences(ids=[5, 7, 9], labels=["REG123", "REG456", "REG789"])
        assert refs.primary_id == 5
        assert refs.primary_label == "REG123"
        assert refs.display_summary == "REG123 (+2 more)"

    def test_single_has_no_suffix(self):
        assert ResolvedReferences(ids=[5], labels=["REG123"]).display_summary == "REG123"

    def test_empty(self):
        refs = ResolvedReferences()
        assert refs.primary_id is None
        assert refs.display_summary is None

    def test_missing_labels_use_placeholder(self):
        refs = ResolvedReferences.from_pairs([(5, "REG123"), (9, None)], placeholder="None")
        assert refs.labels == ["REG123", "None"]


class TestReferenceResolver:
    async def test_resolve_vehicles_in_caller_order(self, db):
        refs = await ReferenceResolver(db).resolve_vehicles([7, 5])
        assert refs.ids == [7, 5]
        assert refs.labels == ["MH12CD5678", "MH12AB1234"]
        assert refs.display_summary == "MH12CD5678 (+1 more)"

    async def test_resolve_drivers(self, db):
        refs = await ReferenceResolver(db).resolve_drivers([3])
        assert refs.labels == ["Ravi Kumar"]

    async def test_first_missing_id_is_reported(self, db):
        with pytest.raises(ReferenceNotFound) as exc_info:
            await ReferenceResolver(db).resolve_vehicles([5, 99, 98])
        assert exc_info.value.kind == "vehicle"
        assert exc_info.value.ref_id == 99

    async def test_ensure_exists(self, db):
        resolver = ReferenceResolver(db)
        await resolver.ensure_exists("customer", 1)
        await resolver.ensure_exists("project", None)
        with pytest.raises(ReferenceNotFound):
            await resolver.ensure_exists("vendor", 42)
