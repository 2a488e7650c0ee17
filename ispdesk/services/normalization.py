"""
Normalization of legacy document shapes into the canonical ones.

Older records stored a single `starlinkEmail` / `vpnIp` string or plain
string arrays, and tickets carried a single `technician`. Everything is
converted here, once, at the API boundary.
"""
import re
from typing import Any, Iterable, List, Optional

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
IPV4_PATTERN = re.compile(r"^(?:(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\.){3}(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)$")
URL_SCHEME_PATTERN = re.compile(r"^https?://", re.IGNORECASE)


class CredentialValidationError(ValueError):
    pass


def clean_ip(value: str) -> str:
    """Reduce a pasted router URL such as "http://10.0.0.1/" to the bare address."""
    text = URL_SCHEME_PATTERN.sub("", (value or "").strip())
    return text.rstrip("/").strip()


def _normalize_entries(value: Any, key: str, legacy_single: Optional[str] = None) -> List[dict]:
    if value is None and legacy_single:
        value = [legacy_single]
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]

    entries: List[dict] = []
    for item in value:
        payment_log = None
        if isinstance(item, str):
            text = item.strip()
            password = ""
        elif isinstance(item, dict) and item.get(key):
            text = str(item.get(key)).strip()
            password = item.get("password") or ""
            payment_log = item.get("paymentLog")
        else:
            continue
        if key == "ip":
            text = clean_ip(text)
        if not text:
            continue
        entry = {key: text, "password": password}
        if payment_log:
            entry["paymentLog"] = list(payment_log)
        entries.append(entry)
    return entries


def carry_payment_logs(new_entries: List[dict], old_entries: Iterable[dict]) -> List[dict]:
    """Keep the payment history of emails that survive an edit."""
    history = {e.get("email"): e.get("paymentLog") for e in old_entries or [] if e.get("paymentLog")}
    for entry in new_entries:
        if "paymentLog" not in entry and entry["email"] in history:
            entry["paymentLog"] = list(history[entry["email"]])
    return new_entries


def record_payment(entries: List[dict], email: str, month: int, year: int, paid_at: str) -> List[dict]:
    """Append a {date, month, year} payment to the matching Starlink email; KeyError when absent."""
    result = [dict(e) for e in entries]
    for entry in result:
        if entry.get("email") == email:
            entry["paymentLog"] = list(entry.get("paymentLog") or []) + [
                {"date": paid_at, "month": month, "year": year}
            ]
            return result
    raise KeyError(email)


def normalize_starlink_emails(value: Any, legacy_single: Optional[str] = None) -> List[dict]:
    return _normalize_entries(value, "email", legacy_single)


def normalize_vpn_ips(value: Any, legacy_single: Optional[str] = None) -> List[dict]:
    return _normalize_entries(value, "ip", legacy_single)


def normalize_technicians(technicians: Any, legacy_technician: Optional[str] = None) -> List[str]:
    if technicians is None and legacy_technician:
        technicians = [legacy_technician]
    if isinstance(technicians, str):
        technicians = [technicians]
    names: List[str] = []
    for item in technicians or []:
        name = item.get("name") if isinstance(item, dict) else item
        name = (name or "").strip() if isinstance(name, str) else ""
        if name and name not in names:
            names.append(name)
    return names


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_PATTERN.match(value or ""))


def is_valid_ipv4(value: str) -> bool:
    return bool(IPV4_PATTERN.match(value or ""))


def validate_credentials(emails: Iterable[dict], ips: Iterable[dict], require_one: bool = True) -> None:
    emails = list(emails)
    ips = list(ips)
    if require_one and not emails and not ips:
        raise CredentialValidationError("At least one Starlink email or VPN IP is required")
    for entry in emails:
        if not is_valid_email(entry["email"]):
            raise CredentialValidationError(f"Invalid email format: {entry['email']}")
    for entry in ips:
        if not is_valid_ipv4(entry["ip"]):
            raise CredentialValidationError(f"Invalid IP address format: {entry['ip']}")
