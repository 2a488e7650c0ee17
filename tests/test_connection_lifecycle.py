from datetime import datetime, timedelta

import pytest
import pytz

from ispdesk import main
from ispdesk.models.models import InternetConnection
from ispdesk.services import connection_lifecycle as lifecycle


NOW = datetime(2024, 6, 1, 12, 0, tzinfo=pytz.UTC)


class TestStateMachine:
    def test_unscheduled_is_active(self):
        assert lifecycle.state_of(None, NOW) is lifecycle.ConnectionState.active

    def test_schedule_sets_grace_window(self):
        ts = lifecycle.schedule_deletion(None, NOW)
        assert ts == NOW + timedelta(hours=72)
        assert lifecycle.is_pending_deletion(ts, NOW)
        assert not lifecycle.can_delete_now(ts, NOW)

    def test_schedule_twice_rejected(self):
        ts = lifecycle.schedule_deletion(None, NOW)
        with pytest.raises(lifecycle.InvalidTransition):
            lifecycle.schedule_deletion(ts, NOW + timedelta(hours=1))

    def test_cancel_clears(self):
        ts = lifecycle.schedule_deletion(None, NOW)
        assert lifecycle.cancel_deletion(ts, NOW) is None

    def test_cancel_without_schedule_rejected(self):
        with pytest.raises(lifecycle.InvalidTransition):
            lifecycle.cancel_deletion(None, NOW)

    def test_expired_after_grace(self):
        ts = NOW - timedelta(seconds=1)
        assert lifecycle.state_of(ts, NOW) is lifecycle.ConnectionState.expired
        assert lifecycle.can_delete_now(ts, NOW)

    def test_naive_timestamps_are_utc(self):
        naive = datetime(2024, 6, 1, 13, 0)
        assert lifecycle.is_pending_deletion(naive, NOW)


class TestTimeRemaining:
    def test_hours_and_minutes(self):
        ts = NOW + timedelta(hours=71, minutes=59, seconds=30)
        assert lifecycle.format_time_remaining(ts, NOW) == "71h 59m remaining"

    def test_elapsed_reads_pending_deletion(self):
        assert lifecycle.format_time_remaining(NOW - timedelta(minutes=5), NOW) == "Pending deletion"

    def test_not_scheduled(self):
        assert lifecycle.format_time_remaining(None, NOW) is None
        assert lifecycle.time_remaining(None, NOW) == timedelta(0)

    def test_countdown_never_increases(self):
        ts = lifecycle.schedule_deletion(None, NOW)
        previous = None
        for minutes in range(0, 72 * 60 + 120, 37):
            remaining = lifecycle.time_remaining(ts, NOW + timedelta(minutes=minutes))
            assert remaining >= timedelta(0)
            if previous is not None:
                assert remaining <= previous
            previous = remaining
        assert lifecycle.format_time_remaining(ts, NOW + timedelta(hours=72)) == "Pending deletion"
        assert lifecycle.format_time_remaining(ts, NOW + timedelta(hours=71, minutes=59)) == "0h 1m remaining"


class TestSweep:
    def test_only_expired_rows_are_deleted(self, db_session):
        db_session.add_all([
            InternetConnection(station="Kilimani", starlink_emails=[], vpn_ips=[]),
            InternetConnection(station="Kasarani", starlink_emails=[], vpn_ips=[],
                               scheduled_for_deletion=NOW + timedelta(hours=1)),
            InternetConnection(station="Ruaka", starlink_emails=[], vpn_ips=[],
                               scheduled_for_deletion=NOW - timedelta(minutes=1)),
        ])
        db_session.commit()

        assert lifecycle.sweep_expired(db_session, NOW) == 1
        remaining = sorted(s for (s,) in db_session.query(InternetConnection.station).all())
        assert remaining == ["Kasarani", "Kilimani"]

    def test_sweep_is_idempotent(self, db_session):
        db_session.add(InternetConnection(station="Ruaka", starlink_emails=[], vpn_ips=[],
                                          scheduled_for_deletion=NOW - timedelta(hours=1)))
        db_session.commit()
        assert lifecycle.sweep_expired(db_session, NOW) == 1
        assert lifecycle.sweep_expired(db_session, NOW) == 0

    def test_background_sweep_survives_errors(self, session_factory, monkeypatch):
        def broken(db):
            raise RuntimeError("boom")

        monkeypatch.setattr(main, "sweep_expired", broken)
        assert main._sweep_once(session_factory) == 0

    def test_background_sweep_deletes(self, session_factory, db_session):
        db_session.add(InternetConnection(station="Ruaka", starlink_emails=[], vpn_ips=[],
                                          scheduled_for_deletion=NOW - timedelta(hours=1)))
        db_session.commit()
        assert main._sweep_once(session_factory) == 1


def _create(client, headers, **overrides):
    body = {"station": "Kilimani", "starlinkEmails": [{"email": "ops@iconic.test", "password": "x"}]}
    body.update(overrides)
    return client.post("/api/internet-connections", json=body, headers=headers)


class TestConnectionRoutes:
    def test_superadmin_only(self, client, admin_headers):
        resp = client.get("/api/internet-connections", headers=admin_headers)
        assert resp.status_code == 403

    def test_create_and_list(self, client, superadmin_headers):
        resp = _create(client, superadmin_headers, vpnIp="10.0.0.1")
        assert resp.status_code == 201
        conn = resp.json()["connection"]
        assert conn["starlinkEmails"] == [{"email": "ops@iconic.test", "password": "x"}]
        assert conn["vpnIps"] == [{"ip": "10.0.0.1", "password": ""}]
        assert conn["isPendingDeletion"] is False

        listing = client.get("/api/internet-connections", headers=superadmin_headers).json()
        assert listing["count"] == 1

    def test_requires_a_credential(self, client, superadmin_headers):
        resp = _create(client, superadmin_headers, starlinkEmails=[])
        assert resp.status_code == 400
        assert resp.json()["error"] == "At least one Starlink email or VPN IP is required"

    def test_invalid_ip_rejected(self, client, superadmin_headers):
        resp = _create(client, superadmin_headers, vpnIps=["10.0.0.300"])
        assert resp.status_code == 400
        assert "10.0.0.300" in resp.json()["error"]

    def test_one_connection_per_station(self, client, superadmin_headers):
        _create(client, superadmin_headers)
        resp = _create(client, superadmin_headers)
        assert resp.status_code == 400

    def test_station_is_immutable(self, client, superadmin_headers):
        conn_id = _create(client, superadmin_headers).json()["connection"]["_id"]
        resp = client.patch(f"/api/internet-connections/{conn_id}", json={"station": "Ruaka"}, headers=superadmin_headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Station cannot be changed after creation"

    def test_delete_requires_elapsed_schedule(self, client, superadmin_headers):
        conn_id = _create(client, superadmin_headers).json()["connection"]["_id"]
        assert client.delete(f"/api/internet-connections/{conn_id}", headers=superadmin_headers).status_code == 400

        resp = client.post(f"/api/internet-connections/{conn_id}/schedule-deletion", headers=superadmin_headers)
        assert resp.status_code == 200
        body = resp.json()["connection"]
        assert body["isPendingDeletion"] is True
        assert body["timeRemaining"].endswith("m remaining")
        # still readable and editable during the grace window
        resp = client.patch(
            f"/api/internet-connections/{conn_id}",
            json={"vpnIps": ["10.0.0.2"]},
            headers=superadmin_headers,
        )
        assert resp.status_code == 200
        assert client.delete(f"/api/internet-connections/{conn_id}", headers=superadmin_headers).status_code == 400

        past = (NOW - timedelta(days=1)).isoformat().replace("+00:00", "Z")
        client.patch(f"/api/internet-connections/{conn_id}", json={"scheduledForDeletion": past}, headers=superadmin_headers)
        assert client.delete(f"/api/internet-connections/{conn_id}", headers=superadmin_headers).status_code == 200

    def test_cancel_deletion(self, client, superadmin_headers):
        conn_id = _create(client, superadmin_headers).json()["connection"]["_id"]
        client.post(f"/api/internet-connections/{conn_id}/schedule-deletion", headers=superadmin_headers)
        resp = client.patch(
            f"/api/internet-connections/{conn_id}", json={"scheduledForDeletion": None}, headers=superadmin_headers
        )
        assert resp.json()["connection"]["scheduledForDeletion"] is None

    def test_cleanup_endpoint(self, client, superadmin_headers):
        conn_id = _create(client, superadmin_headers).json()["connection"]["_id"]
        past = (NOW - timedelta(days=1)).isoformat()
        client.patch(f"/api/internet-connections/{conn_id}", json={"scheduledForDeletion": past}, headers=superadmin_headers)
        resp = client.post("/api/internet-connections/cleanup", headers=superadmin_headers)
        assert resp.json() == {"success": True, "message": "Deleted 1 connection(s)", "deletedCount": 1}

    def test_mark_payment_survives_credential_edit(self, client, superadmin_headers):
        conn_id = _create(client, superadmin_headers).json()["connection"]["_id"]
        resp = client.post(
            f"/api/internet-connections/{conn_id}/mark-payment",
            json={"email": "ops@iconic.test", "month": 5, "year": 2024, "paymentDate": "2024-06-01T09:00:00Z"},
            headers=superadmin_headers,
        )
        assert resp.status_code == 200
        resp = client.patch(
            f"/api/internet-connections/{conn_id}",
            json={"starlinkEmails": [{"email": "ops@iconic.test", "password": "new"}, "spare@iconic.test"]},
            headers=superadmin_headers,
        )
        emails = resp.json()["connection"]["starlinkEmails"]
        assert emails[0]["paymentLog"] == [{"date": "2024-06-01T09:00:00Z", "month": 5, "year": 2024}]
        assert "paymentLog" not in emails[1]

    def test_mark_payment_unknown_email(self, client, superadmin_headers):
        conn_id = _create(client, superadmin_headers).json()["connection"]["_id"]
        resp = client.post(
            f"/api/internet-connections/{conn_id}/mark-payment",
            json={"email": "other@iconic.test", "month": 5, "year": 2024},
            headers=superadmin_headers,
        )
        assert resp.status_code == 404

    def test_edit_cannot_remove_every_credential(self, client, superadmin_headers):
        conn_id = _create(client, superadmin_headers).json()["connection"]["_id"]
        resp = client.patch(f"/api/internet-connections/{conn_id}", json={"starlinkEmails": []}, headers=superadmin_headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "At least one Starlink email or VPN IP is required"
        conn = client.get(f"/api/internet-connections/{conn_id}", headers=superadmin_headers).json()["connection"]
        assert conn["starlinkEmails"][0]["email"] == "ops@iconic.test"

    def test_edit_may_swap_email_for_ip(self, client, superadmin_headers):
        conn_id = _create(client, superadmin_headers).json()["connection"]["_id"]
        resp = client.patch(
            f"/api/internet-connections/{conn_id}",
            json={"starlinkEmails": [], "vpnIps": [{"ip": "http://10.0.0.9/", "password": "admin"}]},
            headers=superadmin_headers,
        )
        assert resp.status_code == 200
        conn = resp.json()["connection"]
        assert conn["starlinkEmails"] == []
        assert conn["vpnIps"] == [{"ip": "10.0.0.9", "password": "admin"}]

    def test_create_cleans_pasted_url(self, client, superadmin_headers):
        resp = _create(client, superadmin_headers, vpnIps=["https://192.168.1.1/"])
        assert resp.json()["connection"]["vpnIps"] == [{"ip": "192.168.1.1", "password": ""}]
