from datetime import date
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel

from rentmatch.schemas.preferences import Pet


class Place(BaseModel):
    """A labelled distance: metro station, commute destination or local essential."""

    label: Optional[str] = None
    destination: Optional[float] = None  # minutes (metro/commute) or metres (essentials)


class BuildingRead(BaseModel):
    id: UUID
    name: str
    address: Optional[str] = None
    building_type: Optional[str] = None
    unit_type: Optional[str] = None
    tenant_type: Optional[str] = None
    metro_stations: Optional[List[Place]] = None
    commute_times: Optional[List[Place]] = None
    local_essentials: Optional[List[Place]] = None
    amenities: Optional[List[str]] = None
    is_concierge: Optional[bool] = None
    pet_policy: Optional[bool] = None
    pets: Optional[List[Pet]] = None
    smoking_area: Optional[bool] = None

    class Config:
        from_attributes = True


class PropertyRead(BaseModel):
    id: UUID
    building_id: Optional[UUID] = None
    title: str
    price: Optional[float] = None
    deposit: Optional[float] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    property_type: Optional[str] = None
    furnishing: Optional[str] = None
    bills: Optional[str] = None
    let_duration: Optional[str] = None
    building_type: Optional[str] = None
    available_from: Optional[date] = None
    square_meters: Optional[float] = None
    tenant_types: Optional[List[str]] = None
    amenities: Optional[List[str]] = None
    pet_policy: Optional[bool] = None
    pets: Optional[List[Pet]] = None
    is_concierge: Optional[bool] = None
    smoking_area: Optional[bool] = None
    outdoor_space: Optional[bool] = None
    balcony: Optional[bool] = None
    terrace: Optional[bool] = None
    metro_stations: Optional[List[Place]] = None
    commute_times: Optional[List[Place]] = None
    local_essentials: Optional[List[Place]] = None
    photos: Optional[List[str]] = None
    building: Optional[BuildingRead] = None

    class Config:
        from_attributes = True


class PropertyFilter(BaseModel):
    building_id: Optional[UUID] = None
    max_price: Optional[float] = None
    limit: int = 200
    offset: int = 0
