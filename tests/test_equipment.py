import uuid
from datetime import date, datetime
from types import SimpleNamespace

import pytest

from ispdesk.models.models import Equipment, EquipmentBatch
from ispdesk.services import equipment_lifecycle as eq


class TestIdentifiers:
    @pytest.mark.parametrize("value", ["SN-88441", "12345", "AA:BB:CC:DD:EE:FF", " aa:bb:cc:dd:ee:ff "])
    def test_valid(self, value):
        assert eq.is_valid_identifier(value)

    @pytest.mark.parametrize("value", ["", "   ", "SN-", "sn-123", "ABC", "AA:BB:CC:DD:EE"])
    def test_invalid(self, value):
        assert not eq.is_valid_identifier(value)

    def test_format_mac_inserts_colons(self):
        assert eq.format_mac("aabbccddeeff") == "aa:bb:cc:dd:ee:ff"
        assert eq.format_mac("AA-BB-CC-DD-EE-FF") == "AA:BB:CC:DD:EE:FF"

    def test_format_mac_leaves_serials(self):
        assert eq.format_mac("123456789012") == "123456789012"
        assert eq.format_mac("SN-1") == "SN-1"

    def test_validation_lists_every_offender(self):
        with pytest.raises(eq.IdentifierValidationError) as exc:
            eq.validate_identifiers(["SN-1", "bad", "", "12", "x1"])
        assert exc.value.invalid == ["bad", "x1"]
        assert "Example: SN-88441" in str(exc.value)

    def test_blank_rows_are_dropped(self):
        assert eq.validate_identifiers(["SN-1", "  ", "", " 12 "]) == ["SN-1", "12"]

    def test_only_blank_rows_rejected(self):
        with pytest.raises(eq.IdentifierValidationError) as exc:
            eq.validate_identifiers(["", "  "])
        assert exc.value.invalid == ["(none)"]


class TestTransitions:
    def test_attach_installs(self):
        changes = eq.attach_to_client("available", client_name=" Jane ", station="Kilimani", today=date(2024, 5, 1))
        assert changes["status"] == "installed"
        assert changes["client_name"] == "Jane"
        assert changes["install_date"] == date(2024, 5, 1)
        assert changes["replaced_equipment_id"] is None

    def test_attach_from_bought(self):
        assert eq.attach_to_client("bought", client_name="Jane")["status"] == "installed"

    def test_attach_requires_client(self):
        with pytest.raises(eq.InvalidTransition, match="Client name is required"):
            eq.attach_to_client("available", client_name="  ")

    @pytest.mark.parametrize("status", ["installed", "in-repair"])
    def test_attach_requires_available(self, status):
        with pytest.raises(eq.InvalidTransition):
            eq.attach_to_client(status, client_name="Jane")

    def test_replacement_keeps_replaced_id(self):
        changes = eq.attach_to_client(
            "available",
            client_name="Jane",
            installation_type="exchange-replacement",
            replaced_equipment_id="EQ-004",
        )
        assert changes["replaced_equipment_id"] == "EQ-004"

    def test_deletion_plan(self):
        assert eq.plan_deletion(uuid.uuid4()) is eq.DeletionPlan.return_to_batch
        assert eq.plan_deletion(None) is eq.DeletionPlan.hard_delete

    def test_tabs(self):
        items = [SimpleNamespace(status=s) for s in ("bought", "available", "installed", "in-repair")]
        assert len(eq.filter_by_tab(items, "available")) == 2
        assert len(eq.filter_by_tab(items, "installed")) == 1
        assert len(eq.filter_by_tab(items, "all")) == 4


class TestUsageStats:
    def test_shapes(self):
        items = [
            SimpleNamespace(status="installed", station="Kilimani", created_at=datetime(2024, 6, 3)),
            SimpleNamespace(status="installed", station=None, created_at=datetime(2024, 5, 3)),
            SimpleNamespace(status="installed", station="Kilimani", created_at=datetime(2023, 1, 1)),
            SimpleNamespace(status="bought", station=None, created_at=datetime(2024, 6, 9)),
        ]
        stats = eq.usage_stats(items, date(2024, 6, 15))
        assert {"name": "Installed", "value": 3} in stats["utilizationData"]
        assert [m["month"] for m in stats["newEquipmentAdded"]] == ["Jan", "Feb", "Mar", "Apr", "May", "Jun"]
        assert stats["newEquipmentAdded"][-1]["added"] == 2
        assert stats["equipmentPerStation"] == [
            {"station": "Kilimani", "installed": 2},
            {"station": "Unassigned", "installed": 1},
        ]


def _create(client, headers, **overrides):
    body = {"name": "ONU", "model": "HG8546M", "serialNumber": "SN-1001", "cost": 2500}
    body.update(overrides)
    return client.post("/api/equipment", json=body, headers=headers)


class TestEquipmentRoutes:
    def test_create_defaults(self, client, admin_headers):
        resp = _create(client, admin_headers)
        assert resp.status_code == 201
        item = resp.json()["equipment"]
        assert item["equipmentId"] == "EQ-001"
        assert item["status"] == "bought"
        assert item["boughtDate"] == date.today().isoformat()
        assert item["installationType"] == "new-installation"

    def test_required_fields(self, client, admin_headers):
        resp = _create(client, admin_headers, model="")
        assert resp.status_code == 400
        assert resp.json()["error"] == "Name, model, and serial number are required"

    def test_duplicate_serial(self, client, admin_headers):
        _create(client, admin_headers)
        resp = _create(client, admin_headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Equipment with this serial number already exists"

    def test_mac_is_formatted(self, client, admin_headers):
        item = _create(client, admin_headers, serialNumber="AA:BB:CC:DD:EE:0F").json()["equipment"]
        assert item["serialNumber"] == "AA:BB:CC:DD:EE:0F"

    def test_invalid_serial(self, client, admin_headers):
        resp = _create(client, admin_headers, serialNumber="router-1")
        assert resp.status_code == 400
        assert "router-1" in resp.json()["error"]

    def test_viewer_cannot_create(self, client, viewer_headers):
        assert _create(client, viewer_headers).status_code == 403

    def test_unapproved_user_blocked(self, client, pending_headers):
        resp = client.get("/api/equipment", headers=pending_headers)
        assert resp.status_code == 403
        assert resp.json()["error"] == "Your account is pending approval"

    def test_bulk_is_all_or_nothing(self, client, admin_headers, db_session):
        resp = client.post(
            "/api/equipment/bulk",
            json={"name": "ONU", "model": "HG8546M", "serialNumbers": ["SN-1", "SN-2", "oops"]},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert db_session.query(Equipment).count() == 0

        resp = client.post(
            "/api/equipment/bulk",
            json={"name": "ONU", "model": "HG8546M", "serialNumbers": ["SN-1", "SN-2", "SN-3"]},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert [e["equipmentId"] for e in resp.json()["equipment"]] == ["EQ-001", "EQ-002", "EQ-003"]

    def test_bulk_rejects_existing_serial(self, client, admin_headers, db_session):
        _create(client, admin_headers, serialNumber="SN-2")
        resp = client.post(
            "/api/equipment/bulk",
            json={"name": "ONU", "model": "HG8546M", "serialNumbers": ["SN-1", "SN-2"]},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert db_session.query(Equipment).count() == 1

    def test_bulk_ignores_blank_rows(self, client, admin_headers):
        resp = client.post(
            "/api/equipment/bulk",
            json={"name": "ONU", "model": "HG8546M", "serialNumbers": ["SN-1", "SN-2", ""]},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert [e["serialNumber"] for e in resp.json()["equipment"]] == ["SN-1", "SN-2"]

    def test_patch_cannot_install(self, client, admin_headers):
        item_id = _create(client, admin_headers).json()["equipment"]["_id"]
        resp = client.patch(f"/api/equipment/{item_id}", json={"status": "installed"}, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Use the attach action to install equipment for a client"
        assert client.get(f"/api/equipment/{item_id}", headers=admin_headers).json()["equipment"]["status"] == "bought"

    def test_patch_installed_item_keeps_status(self, client, admin_headers):
        item_id = _create(client, admin_headers).json()["equipment"]["_id"]
        client.post(f"/api/equipment/{item_id}/attach", json={"clientName": "Jane Doe"}, headers=admin_headers)
        resp = client.patch(
            f"/api/equipment/{item_id}", json={"status": "installed", "warranty": "2 years"}, headers=admin_headers
        )
        assert resp.status_code == 200
        assert resp.json()["equipment"]["clientName"] == "Jane Doe"

    def test_patch_unknown_batch(self, client, admin_headers, db_session):
        item_id = _create(client, admin_headers).json()["equipment"]["_id"]
        resp = client.patch(f"/api/equipment/{item_id}", json={"batchId": str(uuid.uuid4())}, headers=admin_headers)
        assert resp.status_code == 404
        assert resp.json() == {"error": "Batch not found"}
        assert db_session.query(Equipment).one().batch_id is None

    def test_patch_known_batch(self, client, admin_headers, db_session):
        batch = EquipmentBatch(batch_number="BATCH-001", name="June ONUs", purchase_date=date(2024, 6, 1))
        db_session.add(batch)
        db_session.commit()
        item_id = _create(client, admin_headers).json()["equipment"]["_id"]
        resp = client.patch(f"/api/equipment/{item_id}", json={"batchId": str(batch.id)}, headers=admin_headers)
        assert resp.json()["equipment"]["batchId"] == str(batch.id)

    def test_attach_then_tab_filter(self, client, admin_headers):
        item_id = _create(client, admin_headers).json()["equipment"]["_id"]
        resp = client.post(
            f"/api/equipment/{item_id}/attach",
            json={"clientName": "Jane Doe", "clientNumber": "0700", "station": "Kilimani"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["equipment"]["status"] == "installed"

        again = client.post(f"/api/equipment/{item_id}/attach", json={"clientName": "Bob"}, headers=admin_headers)
        assert again.status_code == 400

        installed = client.get("/api/equipment?tab=installed", headers=admin_headers).json()["equipment"]
        available = client.get("/api/equipment?tab=available", headers=admin_headers).json()["equipment"]
        assert len(installed) == 1 and available == []

    def test_patch_serial_uniqueness_excludes_self(self, client, admin_headers):
        first = _create(client, admin_headers).json()["equipment"]["_id"]
        _create(client, admin_headers, serialNumber="SN-2002")
        ok = client.patch(f"/api/equipment/{first}", json={"serialNumber": "SN-1001", "warranty": "1 year"}, headers=admin_headers)
        assert ok.status_code == 200
        assert ok.json()["equipment"]["warranty"] == "1 year"
        clash = client.patch(f"/api/equipment/{first}", json={"serialNumber": "SN-2002"}, headers=admin_headers)
        assert clash.status_code == 400

    def test_delete_needs_permission(self, client, admin_headers):
        item_id = _create(client, admin_headers).json()["equipment"]["_id"]
        assert client.delete(f"/api/equipment/{item_id}", headers=admin_headers).status_code == 403

    def test_delete_unbatched_is_permanent(self, client, admin_headers, superadmin_headers, db_session):
        item_id = _create(client, admin_headers).json()["equipment"]["_id"]
        resp = client.delete(f"/api/equipment/{item_id}", headers=superadmin_headers)
        assert resp.json()["message"] == "Equipment deleted successfully"
        assert db_session.query(Equipment).count() == 0

    def test_delete_batched_returns_to_batch(self, client, superadmin_headers, db_session):
        batch = EquipmentBatch(batch_number="BATCH-001", name="June ONUs", purchase_date=date(2024, 6, 1))
        item = Equipment(
            equipment_id="EQ-001", name="ONU", model="HG", serial_number="SN-9",
            status="installed", client_name="Jane", station="Kilimani", install_date=date(2024, 6, 2),
        )
        batch.equipment.append(item)
        db_session.add(batch)
        db_session.commit()

        resp = client.delete(f"/api/equipment/{item.id}", headers=superadmin_headers)
        assert resp.json()["message"] == "Equipment returned to batch successfully"
        db_session.expire_all()
        row = db_session.query(Equipment).one()
        assert row.status == "available"
        assert row.client_name is None and row.station is None and row.install_date is None
        assert row.batch_id == batch.id

    def test_not_found(self, client, admin_headers):
        resp = client.get(f"/api/equipment/{uuid.uuid4()}", headers=admin_headers)
        assert resp.status_code == 404
        assert resp.json() == {"error": "Equipment not found"}

    def test_stats_route(self, client, admin_headers):
        _create(client, admin_headers)
        stats = client.get("/api/equipment/stats", headers=admin_headers).json()
        assert {"name": "Bought", "value": 1} in stats["utilizationData"]
        assert stats["newEquipmentAdded"][-1]["added"] == 1


class TestTemplates:
    def test_unique_name_model(self, client, admin_headers):
        body = {"name": "ONU", "model": "HG8546M"}
        assert client.post("/api/equipment-templates", json=body, headers=admin_headers).status_code == 201
        assert client.post("/api/equipment-templates", json=body, headers=admin_headers).status_code == 400
        templates = client.get("/api/equipment-templates", headers=admin_headers).json()["templates"]
        assert [(t["name"], t["model"]) for t in templates] == [("ONU", "HG8546M")]
