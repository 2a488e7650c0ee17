import pytest

from ispdesk.services.normalization import (
    CredentialValidationError,
    carry_payment_logs,
    clean_ip,
    normalize_starlink_emails,
    normalize_technicians,
    normalize_vpn_ips,
    record_payment,
    validate_credentials,
)


class TestLegacyShapes:
    def test_object_list_passes_through(self):
        value = [{"email": " a@b.co ", "password": "p"}]
        assert normalize_starlink_emails(value) == [{"email": "a@b.co", "password": "p"}]

    def test_string_list(self):
        assert normalize_starlink_emails(["a@b.co", "  "]) == [{"email": "a@b.co", "password": ""}]

    def test_single_legacy_field(self):
        assert normalize_starlink_emails(None, "old@b.co") == [{"email": "old@b.co", "password": ""}]
        assert normalize_vpn_ips(None, "10.1.1.1") == [{"ip": "10.1.1.1", "password": ""}]

    def test_array_wins_over_legacy_field(self):
        assert normalize_vpn_ips(["10.0.0.1"], "10.1.1.1") == [{"ip": "10.0.0.1", "password": ""}]

    @pytest.mark.parametrize("raw", ["http://10.0.0.1/", "https://10.0.0.1", " 10.0.0.1/ ", "HTTP://10.0.0.1"])
    def test_pasted_router_urls_are_cleaned(self, raw):
        assert clean_ip(raw) == "10.0.0.1"
        assert normalize_vpn_ips([{"ip": raw, "password": "p"}]) == [{"ip": "10.0.0.1", "password": "p"}]

    def test_url_cleanup_leaves_emails_alone(self):
        assert normalize_starlink_emails(["http://a@b.co/"]) == [{"email": "http://a@b.co/", "password": ""}]

    def test_nothing(self):
        assert normalize_starlink_emails(None) == []

    def test_technicians_from_legacy_single(self):
        assert normalize_technicians(None, "Otieno") == ["Otieno"]

    def test_technicians_deduplicated(self):
        assert normalize_technicians(["Wanjiku", {"name": "Wanjiku"}, " Otieno "]) == ["Wanjiku", "Otieno"]


class TestValidation:
    def test_one_credential_required(self):
        with pytest.raises(CredentialValidationError):
            validate_credentials([], [])

    def test_bad_email_named(self):
        with pytest.raises(CredentialValidationError, match="not-an-email"):
            validate_credentials([{"email": "not-an-email"}], [])

    @pytest.mark.parametrize("ip", ["256.1.1.1", "10.0.0", "a.b.c.d"])
    def test_bad_ip(self, ip):
        with pytest.raises(CredentialValidationError):
            validate_credentials([], [{"ip": ip}])

    def test_good_values(self):
        validate_credentials([{"email": "a@b.co"}], [{"ip": "192.168.0.254"}])


class TestPaymentLog:
    def test_record_appends_without_mutating(self):
        entries = [{"email": "a@b.co", "password": ""}]
        updated = record_payment(entries, "a@b.co", 3, 2024, "2024-03-02T00:00:00Z")
        assert updated[0]["paymentLog"] == [{"date": "2024-03-02T00:00:00Z", "month": 3, "year": 2024}]
        assert "paymentLog" not in entries[0]

    def test_record_unknown_email(self):
        with pytest.raises(KeyError):
            record_payment([], "a@b.co", 3, 2024, "2024-03-02T00:00:00Z")

    def test_carry_only_for_kept_emails(self):
        old = [{"email": "a@b.co", "password": "", "paymentLog": [{"month": 1, "year": 2024, "date": "x"}]}]
        new = normalize_starlink_emails(["a@b.co", "c@d.co"])
        carried = carry_payment_logs(new, old)
        assert carried[0]["paymentLog"] == old[0]["paymentLog"]
        assert "paymentLog" not in carried[1]
