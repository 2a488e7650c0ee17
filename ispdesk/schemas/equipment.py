import uuid
from typing import List, Optional

from pydantic import field_validator

from .common import CamelModel, TrimmedModel, strip_or_none


class EquipmentCreate(CamelModel):
    name: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    status: Optional[str] = None
    cost: Optional[float] = None
    warranty: Optional[str] = None
    station: Optional[str] = None
    client_name: Optional[str] = None
    client: Optional[str] = None  # legacy key for client_name
    client_number: Optional[str] = None
    install_date: Optional[str] = None
    last_service: Optional[str] = None
    installation_type: Optional[str] = None
    replaced_equipment_id: Optional[str] = None
    bought_date: Optional[str] = None

    @field_validator("name", "model", "serial_number", "warranty", "station", "client_name", "client",
                     "client_number", "install_date", "last_service", "replaced_equipment_id", "bought_date",
                     mode="before")
    @classmethod
    def empty_to_none(cls, v):
        return strip_or_none(v)


class EquipmentBulkCreate(CamelModel):
    name: Optional[str] = None
    model: Optional[str] = None
    serial_numbers: List[str] = []
    cost: Optional[float] = None
    warranty: Optional[str] = None
    status: Optional[str] = None
    bought_date: Optional[str] = None


class EquipmentUpdate(EquipmentCreate):
    batch_id: Optional[uuid.UUID] = None


class EquipmentAttach(CamelModel):
    client_name: Optional[str] = None
    client_number: Optional[str] = None
    station: Optional[str] = None
    install_date: Optional[str] = None
    installation_type: Optional[str] = None
    replaced_equipment_id: Optional[str] = None


class TemplateCreate(CamelModel):
    name: Optional[str] = None
    model: Optional[str] = None


class BatchItem(CamelModel):
    name: str
    model: str
    serial_number: str
    cost: Optional[float] = 0


class BatchCreate(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    equipment_type: Optional[str] = None
    quantity: Optional[int] = None
    purchase_date: Optional[str] = None
    purchase_cost: Optional[float] = None
    supplier: Optional[str] = None
    equipment_items: Optional[List[BatchItem]] = None
    serial_numbers: Optional[List[str]] = None  # older clients send bare serials


class BatchFromSelected(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    purchase_date: Optional[str] = None
    purchase_cost: Optional[float] = None
    supplier: Optional[str] = None
    equipment_ids: List[uuid.UUID] = []


class EquipmentRequestCreate(TrimmedModel):
    item_name: Optional[str] = None
    item_type: Optional[str] = None
    station: Optional[str] = None
    quantity: Optional[int] = None
    priority: Optional[str] = None
    reason: Optional[str] = None
    additional_notes: Optional[str] = None


class EquipmentRequestReview(TrimmedModel):
    status: Optional[str] = None
    admin_notes: Optional[str] = None
