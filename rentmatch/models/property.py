import uuid
from datetime import datetime
from sqlalchemy import Column, String, Numeric, Integer, Boolean, Date, DateTime, ForeignKey, Text
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import relationship
from .base import Base


class Building(Base):
    __tablename__ = "buildings"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    operator_id = Column(UUID(as_uuid=True))
    name = Column(String(255), nullable=False)
    address = Column(String(255))
    building_type = Column(String(50))
    unit_type = Column(String(50))
    tenant_type = Column(String(50))
    metro_stations = Column(JSONB, default=list)  # [{"label": "Oxford Circus", "destination": 5}]
    commute_times = Column(JSONB, default=list)
    local_essentials = Column(JSONB, default=list)
    amenities = Column(JSONB, default=list)
    is_concierge = Column(Boolean)
    pet_policy = Column(Boolean)
    pets = Column(JSONB)
    smoking_area = Column(Boolean)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    properties = relationship("Property", back_populates="building")


class Property(Base):
    __tablename__ = "properties"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    building_id = Column(UUID(as_uuid=True), ForeignKey("buildings.id", ondelete="CASCADE"), index=True)
    title = Column(String(255), nullable=False)
    descriptions = Column(Text)
    apartment_number = Column(String(50))
    price = Column(Numeric(10, 2))
    deposit = Column(Numeric(10, 2))
    bedrooms = Column(Integer)
    bathrooms = Column(Integer)
    property_type = Column(String(50))
    furnishing = Column(String(50))
    bills = Column(String(50))
    let_duration = Column(String(50))
    building_type = Column(String(50))
    available_from = Column(Date)
    square_meters = Column(Numeric(8, 2))
    tenant_types = Column(JSONB)
    amenities = Column(JSONB)
    pet_policy = Column(Boolean)
    pets = Column(JSONB)
    is_concierge = Column(Boolean)
    smoking_area = Column(Boolean)
    outdoor_space = Column(Boolean)
    balcony = Column(Boolean)
    terrace = Column(Boolean)
    metro_stations = Column(JSONB)
    commute_times = Column(JSONB)
    local_essentials = Column(JSONB)
    photos = Column(JSONB, default=list)  # media storage URLs
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    building = relationship("Building", back_populates="properties")
