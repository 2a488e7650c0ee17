"""
Equipment status transitions, identifier validation and batch statistics.

    bought -> available -> installed -> (available | deleted)

Attaching to a client installs an item. Deleting an installed item returns it
to its purchase batch when it has one, otherwise removes it permanently.
"""
import calendar
import enum
import re
from datetime import date
from typing import Dict, Iterable, List, Optional


class EquipmentStatus(str, enum.Enum):
    bought = "bought"
    available = "available"
    installed = "installed"
    in_repair = "in-repair"


class InstallationType(str, enum.Enum):
    new_installation = "new-installation"
    exchange_replacement = "exchange-replacement"


class DeletionPlan(str, enum.Enum):
    return_to_batch = "return-to-batch"
    hard_delete = "hard-delete"


class InvalidTransition(ValueError):
    pass


class IdentifierValidationError(ValueError):
    def __init__(self, invalid: List[str]):
        self.invalid = invalid
        super().__init__(
            f"Invalid serial number/MAC address format: {', '.join(invalid)}. "
            'Format should be "SN-12345", "12345", or MAC address "AA:BB:CC:DD:EE:FF". '
            "Example: SN-88441"
        )


SERIAL_PATTERN = re.compile(r"^(SN-\d+|\d+)$")
MAC_PATTERN = re.compile(r"^([0-9A-Fa-f]{2}:){5}[0-9A-Fa-f]{2}$")

AVAILABLE_STATUSES = frozenset({EquipmentStatus.bought.value, EquipmentStatus.available.value})

# Fields cleared when an installed item goes back to its batch
RETURN_TO_BATCH_CHANGES = {
    "status": EquipmentStatus.available.value,
    "client_name": None,
    "client_number": None,
    "station": None,
    "install_date": None,
    "installation_type": InstallationType.new_installation.value,
    "replaced_equipment_id": None,
}


def is_valid_identifier(value: Optional[str]) -> bool:
    text = (value or "").strip()
    if not text:
        return False
    return bool(MAC_PATTERN.match(text) or SERIAL_PATTERN.match(text))


def format_mac(value: str) -> str:
    """Insert colons into a 12-hex-digit MAC; serials and other values pass through."""
    text = (value or "").strip()
    if SERIAL_PATTERN.match(text):
        return text
    cleaned = re.sub(r"[^0-9A-Fa-f]", "", text)
    if len(cleaned) != 12:
        return text
    return ":".join(cleaned[i:i + 2] for i in range(0, 12, 2))


def validate_identifiers(values: Iterable[str]) -> List[str]:
    """
    All-or-nothing gate for multi-serial entry. Blank entries are dropped;
    returns the remaining trimmed values or raises IdentifierValidationError
    listing every offending entry.
    """
    cleaned = [v for v in ((v or "").strip() for v in values) if v]
    if not cleaned:
        raise IdentifierValidationError(["(none)"])
    invalid = [v for v in cleaned if not is_valid_identifier(v)]
    if invalid:
        raise IdentifierValidationError(invalid)
    return cleaned


def is_available_for_install(status: Optional[str]) -> bool:
    return status in AVAILABLE_STATUSES


def attach_to_client(
    status: Optional[str],
    *,
    client_name: Optional[str],
    client_number: Optional[str] = None,
    station: Optional[str] = None,
    install_date: Optional[date] = None,
    installation_type: str = InstallationType.new_installation.value,
    replaced_equipment_id: Optional[str] = None,
    today: Optional[date] = None,
) -> Dict[str, object]:
    """Return the field changes for the available -> installed transition."""
    name = (client_name or "").strip()
    if not name:
        raise InvalidTransition("Client name is required")
    if not is_available_for_install(status):
        raise InvalidTransition(f"Equipment with status '{status}' cannot be attached to a client")
    try:
        kind = InstallationType(installation_type or InstallationType.new_installation.value)
    except ValueError:
        raise InvalidTransition(f"Invalid installation type: {installation_type}")

    replaced = (replaced_equipment_id or "").strip() or None
    return {
        "status": EquipmentStatus.installed.value,
        "client_name": name,
        "client_number": (client_number or "").strip() or None,
        "station": (station or "").strip() or None,
        "install_date": install_date or today or date.today(),
        "installation_type": kind.value,
        "replaced_equipment_id": replaced if kind is InstallationType.exchange_replacement else None,
    }


def plan_deletion(batch_id) -> DeletionPlan:
    return DeletionPlan.return_to_batch if batch_id else DeletionPlan.hard_delete


def filter_by_tab(items: Iterable, tab: str) -> list:
    """Dashboard tabs: all, available (bought + available), installed, in-repair."""
    if tab in (None, "", "all"):
        return list(items)
    if tab == "available":
        return [i for i in items if i.status in AVAILABLE_STATUSES]
    return [i for i in items if i.status == tab]


def derive_equipment_type(names: Iterable[str]) -> str:
    unique = []
    for n in names:
        if n not in unique:
            unique.append(n)
    if not unique:
        return "Mixed Equipment"
    if len(unique) == 1:
        return unique[0]
    return f"{len(unique)} Different Products"


def batch_stats(statuses: Iterable[str]) -> Dict[str, object]:
    statuses = list(statuses)
    available = sum(1 for s in statuses if s in AVAILABLE_STATUSES)
    installed = sum(1 for s in statuses if s == EquipmentStatus.installed.value)
    in_repair = sum(1 for s in statuses if s == EquipmentStatus.in_repair.value)
    return {
        "total": len(statuses),
        "available": available,
        "installed": installed,
        "inRepair": in_repair,
        "remaining": available,
        "finished": available == 0,
    }


def usage_stats(items: Iterable, today: date) -> Dict[str, list]:
    """Dashboard charts: status split, additions over the last six months, installs per station."""
    items = list(items)
    labels = (
        ("Installed", EquipmentStatus.installed.value),
        ("Available", EquipmentStatus.available.value),
        ("In Repair", EquipmentStatus.in_repair.value),
        ("Bought", EquipmentStatus.bought.value),
    )
    utilization = [{"name": name, "value": sum(1 for i in items if i.status == s)} for name, s in labels]

    added = []
    for offset in range(5, -1, -1):
        month_index = today.month - 1 - offset
        year = today.year + month_index // 12
        month = month_index % 12 + 1
        count = sum(
            1 for i in items
            if i.created_at is not None and i.created_at.year == year and i.created_at.month == month
        )
        added.append({"month": calendar.month_abbr[month], "added": count})

    per_station: Dict[str, int] = {}
    for i in items:
        if i.status != EquipmentStatus.installed.value:
            continue
        station = (i.station or "").strip() or "Unassigned"
        per_station[station] = per_station.get(station, 0) + 1
    stations = sorted(
        ({"station": k, "installed": v} for k, v in per_station.items()),
        key=lambda row: row["installed"],
        reverse=True,
    )
    return {"utilizationData": utilization, "newEquipmentAdded": added, "equipmentPerStation": stations}
