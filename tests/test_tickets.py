from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest
import pytz

from ispdesk.services.ticket_stats import TICKET_STATUSES, ticket_stats, week_of_month


def _ticket_body(**overrides):
    body = {
        "clientName": "Jane Doe",
        "clientNumber": "0712000000",
        "station": "Kilimani",
        "houseNumber": "B12",
        "category": "No Internet",
        "dateTimeReported": "2024-06-01T08:00:00Z",
        "problemDescription": "LOS light is red",
    }
    body.update(overrides)
    return body


class TestTicketRoutes:
    def test_create_defaults(self, client, admin_headers):
        resp = client.post("/api/tickets", json=_ticket_body(technicians=["Otieno"]), headers=admin_headers)
        assert resp.status_code == 201
        ticket = resp.json()["ticket"]
        assert ticket["ticketId"] == "TKT-001"
        assert ticket["status"] == "open"
        assert ticket["technicians"] == ["Otieno"]
        assert "resolution" not in ticket

    def test_all_fields_required(self, client, admin_headers):
        resp = client.post("/api/tickets", json=_ticket_body(houseNumber="  "), headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "All fields are required"

    def test_close_exposes_resolution(self, client, admin_headers):
        ticket_id = client.post("/api/tickets", json=_ticket_body(), headers=admin_headers).json()["ticket"]["_id"]
        resp = client.patch(
            f"/api/tickets/{ticket_id}",
            json={"status": "closed", "resolutionNotes": "Replaced patch cord"},
            headers=admin_headers,
        )
        ticket = resp.json()["ticket"]
        assert ticket["status"] == "closed"
        assert ticket["resolution"]["resolutionNotes"] == "Replaced patch cord"
        assert ticket["resolution"]["resolvedAt"] is not None

        reopened = client.patch(f"/api/tickets/{ticket_id}", json={"status": "open"}, headers=admin_headers).json()
        assert "resolution" not in reopened["ticket"]

    @pytest.mark.parametrize("status", TICKET_STATUSES)
    def test_every_status_is_accepted(self, client, admin_headers, status):
        ticket_id = client.post("/api/tickets", json=_ticket_body(), headers=admin_headers).json()["ticket"]["_id"]
        resp = client.patch(f"/api/tickets/{ticket_id}", json={"status": status}, headers=admin_headers)
        assert resp.status_code == 200
        assert client.get(f"/api/tickets/{ticket_id}", headers=admin_headers).json()["ticket"]["status"] == status

    def test_pending_is_counted(self, client, admin_headers):
        ticket_id = client.post("/api/tickets", json=_ticket_body(), headers=admin_headers).json()["ticket"]["_id"]
        client.patch(f"/api/tickets/{ticket_id}", json={"status": "pending"}, headers=admin_headers)
        stats = client.get("/api/tickets/stats", headers=admin_headers).json()
        assert stats["statusCounts"]["pending"] == 1
        assert stats["statusCounts"]["open"] == 0

    def test_legacy_single_technician(self, client, admin_headers):
        ticket_id = client.post("/api/tickets", json=_ticket_body(), headers=admin_headers).json()["ticket"]["_id"]
        resp = client.patch(f"/api/tickets/{ticket_id}", json={"technician": "Wanjiku"}, headers=admin_headers)
        assert resp.json()["ticket"]["technicians"] == ["Wanjiku"]

    def test_invalid_status(self, client, admin_headers):
        ticket_id = client.post("/api/tickets", json=_ticket_body(), headers=admin_headers).json()["ticket"]["_id"]
        resp = client.patch(f"/api/tickets/{ticket_id}", json={"status": "archived"}, headers=admin_headers)
        assert resp.status_code == 400

    def test_pagination_and_search(self, client, admin_headers):
        for i in range(5):
            client.post("/api/tickets", json=_ticket_body(clientName=f"Client {i}"), headers=admin_headers)
        client.post("/api/tickets", json=_ticket_body(clientName="Acme Ltd"), headers=admin_headers)

        page = client.get("/api/tickets?page=2&limit=4", headers=admin_headers).json()
        assert page["pagination"] == {"page": 2, "limit": 4, "total": 6, "totalPages": 2}
        assert len(page["tickets"]) == 2

        found = client.get("/api/tickets?search=acme", headers=admin_headers).json()
        assert [t["clientName"] for t in found["tickets"]] == ["Acme Ltd"]

    def test_lookup_by_ticket_code(self, client, admin_headers):
        client.post("/api/tickets", json=_ticket_body(), headers=admin_headers)
        resp = client.get("/api/tickets/by-ticket-id/tkt-001", headers=admin_headers)
        assert resp.json()["ticket"]["ticketId"] == "TKT-001"

    def test_viewer_can_read_not_write(self, client, admin_headers, viewer_headers):
        client.post("/api/tickets", json=_ticket_body(), headers=admin_headers)
        assert client.get("/api/tickets", headers=viewer_headers).status_code == 200
        assert client.post("/api/tickets", json=_ticket_body(), headers=viewer_headers).status_code == 403

    def test_missing_token(self, client):
        resp = client.get("/api/tickets")
        assert resp.status_code == 401
        assert resp.json() == {"error": "Unauthorized"}

    def test_delete(self, client, admin_headers):
        ticket_id = client.post("/api/tickets", json=_ticket_body(), headers=admin_headers).json()["ticket"]["_id"]
        assert client.delete(f"/api/tickets/{ticket_id}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/tickets/{ticket_id}", headers=admin_headers).status_code == 404

    def test_stats_route(self, client, admin_headers):
        client.post("/api/tickets", json=_ticket_body(), headers=admin_headers)
        stats = client.get("/api/tickets/stats", headers=admin_headers).json()
        assert stats["statusCounts"]["open"] == 1
        assert stats["categoryDistribution"] == [{"name": "No Internet", "value": 1}]
        assert sum(w["tickets"] for w in stats["monthlyVolume"]) == 1


class TestCatalogs:
    def test_technicians(self, client, admin_headers):
        resp = client.post("/api/technicians", json={"name": "Otieno", "phone": "0700"}, headers=admin_headers)
        assert resp.status_code == 201
        assert client.post("/api/technicians", json={"name": "Otieno"}, headers=admin_headers).status_code == 400
        techs = client.get("/api/technicians", headers=admin_headers).json()["technicians"]
        assert techs[0]["name"] == "Otieno" and techs[0]["phone"] == "0700"

    def test_categories(self, client, admin_headers):
        client.post("/api/categories", json={"name": "Router Issue"}, headers=admin_headers)
        categories = client.get("/api/categories", headers=admin_headers).json()["categories"]
        assert [c["name"] for c in categories] == ["Router Issue"]

    def test_category_price(self, client, admin_headers):
        resp = client.post("/api/categories", json={"name": "Router Issue", "price": 250}, headers=admin_headers)
        assert resp.status_code == 201
        category = resp.json()["category"]
        assert category["price"] == 250

        resp = client.patch(f"/api/categories/{category['_id']}", json={"price": 300.5}, headers=admin_headers)
        assert resp.json()["category"]["price"] == 300.5
        assert resp.json()["category"]["name"] == "Router Issue"

        bad = client.patch(f"/api/categories/{category['_id']}", json={"price": -1}, headers=admin_headers)
        assert bad.status_code == 400

    def test_category_rename_clash(self, client, admin_headers):
        client.post("/api/categories", json={"name": "Router Issue"}, headers=admin_headers)
        other = client.post("/api/categories", json={"name": "No Internet"}, headers=admin_headers).json()["category"]
        resp = client.patch(f"/api/categories/{other['_id']}", json={"name": "Router Issue"}, headers=admin_headers)
        assert resp.json() == {"error": "Category already exists"}


def _t(status, category, created, reported=None, resolved=None):
    return SimpleNamespace(
        status=status,
        category=category,
        created_at=created,
        date_time_reported=reported or created,
        resolved_at=resolved,
    )


class TestTicketStats:
    def test_week_buckets(self):
        assert [week_of_month(d) for d in (1, 7, 8, 21, 22, 31)] == [0, 0, 1, 2, 3, 3]

    def test_aggregates(self):
        now = datetime(2024, 6, 20, 9, tzinfo=pytz.UTC)
        june_2 = datetime(2024, 6, 2, 9, tzinfo=pytz.UTC)
        june_16 = datetime(2024, 6, 16, 9, tzinfo=pytz.UTC)
        tickets = [
            _t("closed", "No Internet", june_2, resolved=june_2 + timedelta(hours=6)),
            _t("closed", "No Internet", june_2, resolved=june_2 + timedelta(hours=2)),
            _t("closed", "Billing", june_16, resolved=june_16 + timedelta(days=5)),
            _t("open", "Billing", datetime(2024, 5, 30, tzinfo=pytz.UTC)),
        ]
        stats = ticket_stats(tickets, now)
        assert stats["statusCounts"] == {"open": 1, "in-progress": 0, "pending": 0, "closed": 3}
        assert {"name": "Billing", "value": 2} in stats["categoryDistribution"]
        assert [w["tickets"] for w in stats["monthlyVolume"]] == [2, 0, 1, 0]
        assert [w["hours"] for w in stats["resolutionTime"]] == [4, 0, 28, 0]
