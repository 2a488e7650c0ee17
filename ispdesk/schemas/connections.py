from typing import Any, Optional

from .common import CamelModel


class ConnectionCreate(CamelModel):
    station: Optional[str] = None
    # list of {email, password}, list of strings, or a single string
    starlink_emails: Any = None
    vpn_ips: Any = None
    # legacy single-value fields
    starlink_email: Optional[str] = None
    vpn_ip: Optional[str] = None


class ConnectionUpdate(CamelModel):
    station: Optional[str] = None
    starlink_emails: Any = None
    vpn_ips: Any = None
    scheduled_for_deletion: Optional[str] = None


class PaymentMark(CamelModel):
    email: Optional[str] = None
    month: Optional[int] = None
    year: Optional[int] = None
    payment_date: Optional[str] = None
