from typing import List, Optional

from .common import TrimmedModel


class StationCreate(TrimmedModel):
    name: Optional[str] = None
    location: Optional[str] = None
    region: Optional[str] = None
    status: Optional[str] = None
    performance_score: Optional[float] = None


class StationUpdate(StationCreate):
    pass


class StationTaskCreate(TrimmedModel):
    title: Optional[str] = None
    station_id: Optional[str] = None
    station_name: Optional[str] = None
    description: Optional[str] = None
    technician_ids: Optional[List[str]] = None


class StationTaskUpdate(TrimmedModel):
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    technician_ids: Optional[List[str]] = None
