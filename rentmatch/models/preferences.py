import uuid
from datetime import datetime
from sqlalchemy import Column, String, Integer, Boolean, Date, DateTime, Text
from sqlalchemy.dialects.postgresql import UUID, JSONB
from .base import Base


class Preferences(Base):
    __tablename__ = "preferences"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # Tenant identity comes from the user-management service; one row per tenant
    user_id = Column(UUID(as_uuid=True), unique=True, nullable=False, index=True)
    version = Column(Integer, nullable=False, default=1)

    # Lifestyle
    occupation = Column(String(100))
    family_status = Column(String(100))
    children_count = Column(String(50))

    # Location
    preferred_address = Column(String(255))
    preferred_metro_stations = Column(JSONB, default=list)
    preferred_essentials = Column(JSONB, default=list)
    preferred_commute_times = Column(JSONB, default=list)

    # Budget & move-in
    move_in_date = Column(Date)
    move_out_date = Column(Date)
    min_price = Column(Integer)
    max_price = Column(Integer)
    deposit_preference = Column(String(10))

    # Property & rooms
    property_types = Column(JSONB, default=list)
    bedrooms = Column(JSONB, default=list)
    bathrooms = Column(JSONB, default=list)
    furnishing = Column(JSONB, default=list)
    outdoor_space = Column(Boolean)
    balcony = Column(Boolean)
    terrace = Column(Boolean)
    min_square_meters = Column(Integer)
    max_square_meters = Column(Integer)

    # Building & duration
    building_types = Column(JSONB, default=list)
    let_duration = Column(String(50))
    bills = Column(String(50))
    tenant_types = Column(JSONB, default=list)

    # Pets
    pet_policy = Column(Boolean)
    pets = Column(JSONB, default=list)  # [{"type": "dog", "custom_type": None, "size": "small"}]
    number_of_pets = Column(Integer)

    # Amenities
    amenities = Column(JSONB, default=list)
    is_concierge = Column(Boolean)
    smoking_area = Column(Boolean)

    # Personal
    hobbies = Column(JSONB, default=list)
    ideal_living_environment = Column(JSONB, default=list)
    smoker = Column(String(50))
    additional_info = Column(Text)

    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
