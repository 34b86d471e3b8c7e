"""API tests for /api/v1/transactions."""
from io import BytesIO

from PIL import Image

from app.core.storage import StorageClient


BASE = "/api/v1/transactions"


def png_bytes() -> bytes:
    buffer = BytesIO()
    Image.new("RGB", (4, 4), (200, 30, 30)).save(buffer, format="PNG")
    return buffer.getvalue()


def form_fields(payload: dict) -> dict:
    """Multipart form values are strings; lists become repeated keys."""
    return {
        key: [str(v) for v in value] if isinstance(value, list) else str(value)
        for key, value in payload.items()
    }


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


class TestCreateAndRead:
    async def test_create_fixed_json(self, client, fixed_payload):
        response = await client.post(BASE, json=fixed_payload())

        assert response.status_code == 201
        body = response.json()
        assert body["transaction_id"] == 1
        assert body["trip_type"] == "Fixed"
        assert body["vehicle_ids"] == [5, 7]
        assert body["display_vehicle"] == "MH12AB1234 (+1 more)"
        assert body["total_km"] == 50.0
        assert body["total_freight"] == 2700.0
        assert body["vehicle_out_from_hub_for_delivery"] == "08:15:00"

    async def test_create_adhoc_multipart_with_attachment(self, client, adhoc_payload):
        response = await client.post(
            BASE,
            data=form_fields(adhoc_payload(advance_paid_amount=1000)),
            files={"opening_km_image_adhoc": ("km.png", png_bytes(), "image/png")},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["balance_to_be_paid"] == 2000.0
        assert body["opening_km_image"].startswith("transactions/opening_km_image-")
        assert StorageClient.exists(body["opening_km_image"])

        download = await client.get(body["opening_km_image_url"])
        assert download.status_code == 200
        assert download.content == png_bytes()
        assert download.headers["cache-control"] == "no-cache"

    async def test_multipart_repeated_reference_keys(self, client, fixed_payload):
        response = await client.post(BASE, data=form_fields(fixed_payload(vehicle_ids=[7, 5])))
        assert response.status_code == 201
        assert response.json()["vehicle_ids"] == [7, 5]

    async def test_get_reports_resolution(self, client, fixed_payload, adhoc_payload):
        await client.post(BASE, json=fixed_payload())
        await client.post(BASE, json=adhoc_payload())

        ambiguous = await client.get(f"{BASE}/1")
        assert ambiguous.status_code == 200
        assert ambiguous.json()["trip_type"] == "Adhoc"
        assert ambiguous.json()["resolved_by"] == "most_recent"

        explicit = await client.get(f"{BASE}/1", params={"type": "Fixed"})
        assert explicit.json()["trip_type"] == "Fixed"
        assert explicit.json()["resolved_by"] == "requested"

    async def test_get_missing(self, client):
        response = await client.get(f"{BASE}/42")
        assert response.status_code == 404
        assert response.json()["error"] == "Not found"


class TestErrors:
    async def test_validation_is_reported_per_field(self, client, fixed_payload):
        response = await client.post(
            BASE, json=fixed_payload(driver_ids="N/A", closing_km=50)
        )
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Validation failed"
        assert "driver_ids" in body["fields"]
        assert "closing_km" in body["fields"]

    async def test_unknown_trip_type(self, client, fixed_payload):
        response = await client.post(BASE, json=fixed_payload(trip_type="Monthly"))
        assert response.status_code == 400
        assert "trip_type" in response.json()["fields"]

    async def test_unknown_reference(self, client, fixed_payload):
        response = await client.post(BASE, json=fixed_payload(vehicle_ids=[5, 99]))
        assert response.status_code == 400
        body = response.json()
        assert body["reference"] == {"kind": "vehicle", "id": 99}
        assert body["detail"] == "Vehicle with ID 99 not found"

    async def test_rejected_attachment(self, client, adhoc_payload):
        response = await client.post(
            BASE,
            data=form_fields(adhoc_payload()),
            files={"toll_expenses_doc": ("toll.pdf", b"not a pdf", "application/pdf")},
        )
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "File Upload Error"
        assert body["file"] == "toll.pdf"
        assert body["field"] == "toll_expenses_doc"
        assert body["accepted_formats"] == ["JPEG", "PNG", "PDF"]

    async def test_bad_query_parameter(self, client):
        response = await client.get(BASE, params={"page": 0})
        assert response.status_code == 400
        assert "page" in response.json()["fields"]


class TestUpdate:
    async def test_update_keeps_attachment_without_new_file(self, client, adhoc_payload):
        created = (await client.post(
            BASE,
            data=form_fields(adhoc_payload()),
            files={"closing_km_image": ("km.png", png_bytes(), "image/png")},
        )).json()

        response = await client.put(
            f"{BASE}/1", data={"trip_type": "Adhoc", "balance_paid_amount": "3000"}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["closing_km_image"] == created["closing_km_image"]
        assert body["variance"] == 0.0

    async def test_replacing_attachment_removes_old_file(self, client, adhoc_payload):
        created = (await client.post(
            BASE,
            data=form_fields(adhoc_payload()),
            files={"closing_km_image": ("km.png", png_bytes(), "image/png")},
        )).json()

        response = await client.put(
            f"{BASE}/1",
            data={"trip_type": "Adhoc"},
            files={"closing_km_image": ("km2.png", png_bytes(), "image/png")},
        )
        new_path = response.json()["closing_km_image"]
        assert new_path != created["closing_km_image"]
        assert StorageClient.exists(new_path)
        assert not StorageClient.exists(created["closing_km_image"])

    async def test_update_requires_trip_type(self, client, fixed_payload):
        await client.post(BASE, json=fixed_payload())
        response = await client.put(f"{BASE}/1", json={"remarks": "x"})
        assert response.status_code == 400
        assert "trip_type" in response.json()["fields"]

    async def test_delete_attachment(self, client, adhoc_payload):
        created = (await client.post(
            BASE,
            data=form_fields(adhoc_payload()),
            files={"driver_licence_doc": ("dl.pdf", b"%PDF-1.4 minimal", "application/pdf")},
        )).json()

        response = await client.delete(
            f"{BASE}/1/files/driver_licence_doc", params={"type": "Adhoc"}
        )
        assert response.status_code == 200
        assert response.json()["driver_licence_doc"] is None
        assert not StorageClient.exists(created["driver_licence_doc"])


class TestListExportDelete:
    async def test_list_with_aliases(self, client, fixed_payload, adhoc_payload):
        await client.post(BASE, json=fixed_payload(transaction_date="2026-03-01"))
        await client.post(BASE, json=adhoc_payload(transaction_date="2026-03-05"))

        response = await client.get(
            BASE, params={"pageSize": 1, "fromDate": "2026-03-01", "toDate": "2026-03-31"}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 2
        assert body["pages"] == 2
        assert body["size"] == 1
        assert body["items"][0]["trip_type"] == "Adhoc"
        assert body["items"][0]["serial_number"] == 1

    async def test_stats(self, client, fixed_payload):
        await client.post(BASE, json=fixed_payload())
        response = await client.get(f"{BASE}/stats/summary")
        assert response.status_code == 200
        assert response.json()["total_count"] == 1
        assert response.json()["total_freight"] == 2700.0

    async def test_export_download(self, client, fixed_payload):
        await client.post(BASE, json=fixed_payload())
        response = await client.get(f"{BASE}/export/all")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith(
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        )
        assert "all-transactions.xlsx" in response.headers["content-disposition"]

    async def test_file_not_found(self, client):
        response = await client.get(f"{BASE}/files/missing.png")
        assert response.status_code == 404

    async def test_delete_single(self, client, adhoc_payload):
        await client.post(BASE, json=adhoc_payload())
        response = await client.delete(f"{BASE}/1")
        assert response.status_code == 200
        assert response.json()["trip_type"] == "Adhoc"
        assert (await client.get(f"{BASE}/1")).status_code == 404

    async def test_bulk_delete(self, client, fixed_payload, adhoc_payload):
        await client.post(BASE, json=fixed_payload())
        await client.post(BASE, json=adhoc_payload())
        await client.post(BASE, json=adhoc_payload())

        response = await client.request("DELETE", f"{BASE}/bulk", json={"ids": [1, 2, 999]})

        assert response.status_code == 200
        body = response.json()
        assert body["deleted_count"] == 2
        assert body["not_found_count"] == 1
        assert body["results"][2] == {"id": 999, "trip_type": None, "status": "not_found"}

    async def test_bulk_delete_repeated_id(self, client, adhoc_payload):
        await client.post(BASE, json=adhoc_payload())

        response = await client.request("DELETE", f"{BASE}/bulk", json={"ids": [1, 1, 999]})

        assert response.status_code == 200
        body = response.json()
        assert body["deleted_count"] == 1
        assert body["not_found_count"] == 2
        assert body["results"][1] == {"id": 1, "trip_type": None, "status": "not_found"}

    async def test_delete_attachment_without_type(self, client, adhoc_payload):
        created = (await client.post(
            BASE,
            data=form_fields(adhoc_payload()),
            files={"closing_km_image": ("km.png", png_bytes(), "image/png")},
        )).json()

        response = await client.delete(f"{BASE}/1/files/closing_km_image")

        assert response.status_code == 200
        assert response.json()["trip_type"] == "Adhoc"
        assert response.json()["closing_km_image"] is None
        assert not StorageClient.exists(created["closing_km_image"])


class TestFormData:
    async def test_customers(self, client):
        response = await client.get(f"{BASE}/form-data/customers")
        assert response.status_code == 200
        assert response.json()[0]["display_name"] == "Acme Retail (ACME)"

    async def test_customer_snapshot(self, client):
        response = await client.get(f"{BASE}/form-data/customer/1")
        assert response.status_code == 200
        assert response.json()["gst_number"] == "27AAACA1234A1Z5"

        missing = await client.get(f"{BASE}/form-data/customer/404")
        assert missing.status_code == 404
        assert missing.json()["error"] == "Not found"

    async def test_customer_vehicles(self, client):
        response = await client.get(f"{BASE}/form-data/customer/1/vehicles")
        assert response.status_code == 200
        assert [v["vehicle_number"] for v in response.json()] == ["MH12AB1234", "MH12CD5678"]

    async def test_vehicle_details_and_drivers(self, client):
        details = await client.get(f"{BASE}/form-data/vehicle/7/details")
        assert details.json()["vendor_code"] == "V001"

        drivers = await client.get(f"{BASE}/form-data/vehicle/7/drivers")
        assert [d["driver_id"] for d in drivers.json()] == [3, 4]

    async def test_vehicle_project_details(self, client):
        response = await client.get(
            f"{BASE}/form-data/vehicle/5/project-details", params={"customerId": 2}
        )
        assert response.status_code == 200
        assert response.json()["project_code"] == "CC"
        assert response.json()["assigned_date"] == "2025-12-01"

        missing = await client.get(f"{BASE}/form-data/vehicle/8/project-details")
        assert missing.status_code == 404
