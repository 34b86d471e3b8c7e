"""Tests for the dual-store transaction service."""
from datetime import date, time
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from app.core.exceptions import (
    DependencyError, NotFound, ReferenceNotFound, ValidationError,
)
from app.core.storage import StorageClient
from app.models.transaction import (
    AdhocTransaction, FixedTransaction, FixedTransactionDriver, FixedTransactionVehicle, TripType,
)
from app.services.reference_resolver import ReferenceResolver, ResolvedReferences
from app.services.transaction_service import (
    RESOLVED_MOST_RECENT,
    RESOLVED_REQUESTED,
    RESOLVED_SINGLE_MATCH,
    TransactionService,
    build_response,
)


async def count(db, model):
    return (await db.execute(select(func.count()).select_from(model))).scalar()


class TestCreate:
    async def test_fixed_trip_keeps_reference_order(self, db, fixed_payload):
        record = await TransactionService(db).create(
            TripType.FIXED, fixed_payload(vehicle_ids="7,5", driver_ids=[4, 3])
        )
        assert record.transaction_id == 1
        assert record.trip_type == "Fixed"
        assert record.vehicle_ids == [7, 5]
        assert record.driver_ids == [4, 3]
        assert record.transaction_date == date(2026, 3, 10)
        assert record.vehicle_out_from_hub_for_delivery == time(8, 15)
        assert record.vehicle_return_at_hub == time(18, 45)
        assert record.total_freight == Decimal("2700.00")

    async def test_adhoc_trip_derives_balance(self, db, adhoc_payload):
        record = await TransactionService(db).create(
            TripType.ADHOC, adhoc_payload(advance_paid_amount=1000)
        )
        assert record.total_freight == Decimal("3000.00")
        assert record.balance_to_be_paid == Decimal("2000.00")

    async def test_adhoc_variable_rate(self, db, adhoc_payload):
        record = await TransactionService(db).create(
            TripType.REPLACEMENT,
            adhoc_payload(trip_type="Replacement", v_freight_fix=1000, v_freight_variable=10),
        )
        # 80 km at 10 per km on top of the fixed rate
        assert record.trip_type == "Replacement"
        assert record.total_freight == Decimal("1800.00")

    async def test_unknown_vehicle_rejects_whole_write(self, db, fixed_payload):
        with pytest.raises(ReferenceNotFound) as exc_info:
            await TransactionService(db).create(TripType.FIXED, fixed_payload(vehicle_ids=[5, 99]))
        assert exc_info.value.ref_id == 99
        assert await count(db, FixedTransaction) == 0
        assert await count(db, FixedTransactionVehicle) == 0

    async def test_link_row_failure_rolls_back_header(self, db, fixed_payload, monkeypatch):
        async def accept_any(self, ids):
            return ResolvedReferences(ids=list(ids))

        # Let the unknown vehicle through to the database, where its foreign key fails
        monkeypatch.setattr(ReferenceResolver, "resolve_vehicles", accept_any)

        with pytest.raises(DependencyError):
            await TransactionService(db).create(TripType.FIXED, fixed_payload(vehicle_ids=[5, 99]))

        assert await count(db, FixedTransaction) == 0
        assert await count(db, FixedTransactionVehicle) == 0
        assert await count(db, FixedTransactionDriver) == 0

    async def test_fixed_requires_vehicle_and_driver(self, db, fixed_payload):
        with pytest.raises(ValidationError) as exc_info:
            await TransactionService(db).create(
                TripType.FIXED, fixed_payload(vehicle_ids="N/A", driver_ids=[])
            )
        assert set(exc_info.value.fields) >= {"vehicle_ids", "driver_ids"}

    async def test_adhoc_required_fields(self, db, adhoc_payload):
        payload = adhoc_payload()
        del payload["vendor_name"]
        del payload["driver_number"]
        with pytest.raises(ValidationError) as exc_info:
            await TransactionService(db).create(TripType.ADHOC, payload)
        assert "vendor_name" in exc_info.value.fields
        assert "driver_number" in exc_info.value.fields

    @pytest.mark.parametrize("overrides,field", [
        ({"closing_km": 90}, "closing_km"),
        ({"toll_expenses": -5}, "toll_expenses"),
        ({"vehicle_return_at_hub": "07:00"}, "vehicle_return_at_hub"),
        ({"replacement_driver_name": "Anil"}, "replacement_driver_no"),
        ({"replacement_driver_name": "Anil", "replacement_driver_no": "12345"}, "replacement_driver_no"),
    ])
    async def test_field_rules(self, db, fixed_payload, overrides, field):
        with pytest.raises(ValidationError) as exc_info:
            await TransactionService(db).create(TripType.FIXED, fixed_payload(**overrides))
        assert field in exc_info.value.fields

    async def test_adhoc_number_formats(self, db, adhoc_payload):
        with pytest.raises(ValidationError) as exc_info:
            await TransactionService(db).create(
                TripType.ADHOC,
                adhoc_payload(driver_number="98765", driver_aadhar_number="1234"),
            )
        assert "driver_number" in exc_info.value.fields
        assert "driver_aadhar_number" in exc_info.value.fields

    async def test_unknown_customer(self, db, adhoc_payload):
        with pytest.raises(ReferenceNotFound) as exc_info:
            await TransactionService(db).create(TripType.ADHOC, adhoc_payload(customer_id=404))
        assert exc_info.value.kind == "customer"


class TestUpdate:
    async def test_partial_update_keeps_other_fields(self, db, fixed_payload):
        service = TransactionService(db)
        created = await service.create(TripType.FIXED, fixed_payload())

        updated = await service.update(TripType.FIXED, created.transaction_id, {"closing_km": "180"})

        assert updated.closing_km == Decimal("180")
        assert updated.vehicle_ids == [5, 7]
        assert updated.v_freight_fix == Decimal("2500")
        assert updated.total_freight == Decimal("2700.00")

    async def test_reorders_vehicles(self, db, fixed_payload):
        service = TransactionService(db)
        created = await service.create(TripType.FIXED, fixed_payload())

        updated = await service.update(
            TripType.FIXED, created.transaction_id, {"vehicle_ids": [7, 5], "driver_ids": "3,4"}
        )
        assert updated.vehicle_ids == [7, 5]
        assert updated.driver_ids == [3, 4]

    async def test_balance_payment_settles_variance(self, db, adhoc_payload):
        service = TransactionService(db)
        created = await service.create(TripType.ADHOC, adhoc_payload(advance_paid_amount=1000))
        assert created.balance_to_be_paid == Decimal("2000.00")

        updated = await service.update(
            TripType.ADHOC, created.transaction_id, {"balance_paid_amount": 2000}
        )
        assert updated.balance_to_be_paid == Decimal("2000.00")
        assert updated.variance == Decimal("0.00")

    async def test_missing_record(self, db):
        with pytest.raises(NotFound):
            await TransactionService(db).update(TripType.FIXED, 12, {"closing_km": 1})

    async def test_trip_type_is_immutable(self, db, adhoc_payload):
        service = TransactionService(db)
        created = await service.create(TripType.ADHOC, adhoc_payload())
        with pytest.raises(ValidationError) as exc_info:
            await service.update(TripType.REPLACEMENT, created.transaction_id, {"remarks": "x"})
        assert "trip_type" in exc_info.value.fields

    async def test_update_is_validated_like_create(self, db, fixed_payload):
        service = TransactionService(db)
        created = await service.create(TripType.FIXED, fixed_payload())
        with pytest.raises(ValidationError):
            await service.update(TripType.FIXED, created.transaction_id, {"closing_km": 10})


class TestGetById:
    async def test_requested_variant(self, db, fixed_payload):
        service = TransactionService(db)
        await service.create(TripType.FIXED, fixed_payload())
        record, variant, resolved_by = await service.get_by_id(1, TripType.FIXED)
        assert variant == TripType.FIXED
        assert resolved_by == RESOLVED_REQUESTED

    async def test_single_match_without_variant(self, db, adhoc_payload):
        service = TransactionService(db)
        await service.create(TripType.ADHOC, adhoc_payload())
        record, variant, resolved_by = await service.get_by_id(1)
        assert variant == TripType.ADHOC
        assert resolved_by == RESOLVED_SINGLE_MATCH

    async def test_id_in_both_stores_returns_most_recent(self, db, fixed_payload, adhoc_payload):
        service = TransactionService(db)
        fixed = await service.create(TripType.FIXED, fixed_payload())
        adhoc = await service.create(TripType.ADHOC, adhoc_payload())
        assert fixed.transaction_id == adhoc.transaction_id == 1

        record, variant, resolved_by = await service.get_by_id(1)
        assert variant == TripType.ADHOC
        assert isinstance(record, AdhocTransaction)
        assert resolved_by == RESOLVED_MOST_RECENT

        # An explicit variant always wins
        record, variant, _ = await service.get_by_id(1, TripType.FIXED)
        assert isinstance(record, FixedTransaction)

    async def test_not_found(self, db):
        with pytest.raises(NotFound):
            await TransactionService(db).get_by_id(1)

    async def test_round_trip_response(self, db, fixed_payload):
        service = TransactionService(db)
        await service.create(TripType.FIXED, fixed_payload())
        record, _, resolved_by = await service.get_by_id(1, TripType.FIXED)

        response = build_response(record, resolved_by)
        assert response.vehicle_ids == [5, 7]
        assert response.driver_ids == [3]
        assert response.transaction_date == date(2026, 3, 10)
        assert response.display_vehicle == "MH12AB1234 (+1 more)"
        assert response.display_driver == "Ravi Kumar"
        assert response.total_km == Decimal("50")
        assert response.customer_name == "Acme Retail"
        assert response.vendor_name == "Speedy Logistics"
        assert response.resolved_by == "requested"


class TestDelete:
    async def test_delete_tries_fixed_first(self, db, fixed_payload, adhoc_payload):
        service = TransactionService(db)
        await service.create(TripType.FIXED, fixed_payload())
        await service.create(TripType.ADHOC, adhoc_payload())

        assert await service.delete(1) == TripType.FIXED
        assert await count(db, FixedTransaction) == 0
        assert await count(db, FixedTransactionVehicle) == 0
        assert await count(db, AdhocTransaction) == 1

    async def test_delete_with_variant(self, db, fixed_payload, adhoc_payload):
        service = TransactionService(db)
        await service.create(TripType.FIXED, fixed_payload())
        await service.create(TripType.ADHOC, adhoc_payload())

        assert await service.delete(1, TripType.ADHOC) == TripType.ADHOC
        assert await count(db, FixedTransaction) == 1

    async def test_delete_missing(self, db):
        with pytest.raises(NotFound):
            await TransactionService(db).delete(5)

    async def test_bulk_delete_reports_each_id(self, db, fixed_payload, adhoc_payload):
        service = TransactionService(db)
        await service.create(TripType.FIXED, fixed_payload())
        await service.create(TripType.ADHOC, adhoc_payload())
        await service.create(TripType.ADHOC, adhoc_payload(vehicle_number="KA01XY0002"))

        result = await service.bulk_delete([1, 2, 999])

        assert result["deleted_count"] == 2
        assert result["not_found_count"] == 1
        assert result["total_requested"] == 3
        assert result["results"] == [
            {"id": 1, "trip_type": TripType.FIXED, "status": "deleted"},
            {"id": 2, "trip_type": TripType.ADHOC, "status": "deleted"},
            {"id": 999, "trip_type": None, "status": "not_found"},
        ]
        # Adhoc 1 was shadowed by Fixed 1 and stays
        assert await count(db, AdhocTransaction) == 1

    async def test_bulk_delete_repeated_id(self, db, adhoc_payload):
        service = TransactionService(db)
        await service.create(TripType.ADHOC, adhoc_payload())

        result = await service.bulk_delete([1, 1, 999])

        assert result["deleted_count"] == 1
        assert result["not_found_count"] == 2
        assert [r["status"] for r in result["results"]] == ["deleted", "not_found", "not_found"]


class TestDeleteAttachment:
    async def test_without_variant_searches_both_stores(self, db, adhoc_payload):
        service = TransactionService(db)
        await service.create(TripType.ADHOC, adhoc_payload())
        record, _, _ = await service.get_by_id(1)
        record.toll_expenses_doc = StorageClient.save(b"%PDF-1.4", "transactions", "toll.pdf")
        await db.commit()
        path = record.toll_expenses_doc

        updated = await service.delete_attachment(1, None, "toll_expenses_doc")

        assert isinstance(updated, AdhocTransaction)
        assert updated.toll_expenses_doc is None
        assert not StorageClient.exists(path)

    async def test_missing_transaction(self, db):
        with pytest.raises(NotFound):
            await TransactionService(db).delete_attachment(3, None, "closing_km_image")
