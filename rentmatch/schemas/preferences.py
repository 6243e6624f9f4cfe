from datetime import date, datetime
from typing import Any, Dict, List, Literal, Mapping, Optional
from uuid import UUID

from pydantic import BaseModel, Field, ValidationError

PET_TYPES = ("dog", "cat", "other")


class Pet(BaseModel):
    type: Literal["dog", "cat", "other"]
    custom_type: Optional[str] = None
    size: Optional[Literal["small", "medium", "large"]] = None


class PreferencesFields(BaseModel):
    """Persisted preference fields, as exchanged with the preferences store."""

    # Lifestyle
    occupation: Optional[str] = None
    family_status: Optional[str] = None
    children_count: Optional[str] = None

    # Location
    preferred_address: Optional[str] = None
    preferred_metro_stations: Optional[List[str]] = None
    preferred_essentials: Optional[List[str]] = None
    preferred_commute_times: Optional[List[str]] = None

    # Budget & move-in
    move_in_date: Optional[date] = None
    move_out_date: Optional[date] = None
    min_price: Optional[int] = Field(None, ge=0)
    max_price: Optional[int] = Field(None, ge=0)
    deposit_preference: Optional[Literal["yes", "no"]] = None

    # Property & rooms
    property_types: Optional[List[str]] = None
    bedrooms: Optional[List[int]] = None
    bathrooms: Optional[List[int]] = None
    furnishing: Optional[List[str]] = None
    outdoor_space: Optional[bool] = None
    balcony: Optional[bool] = None
    terrace: Optional[bool] = None
    min_square_meters: Optional[int] = Field(None, ge=0)
    max_square_meters: Optional[int] = Field(None, ge=0)

    # Building & duration
    building_types: Optional[List[str]] = None
    let_duration: Optional[str] = None
    bills: Optional[str] = None
    tenant_types: Optional[List[str]] = None

    # Pets
    pet_policy: Optional[bool] = None
    pets: Optional[List[Pet]] = None
    number_of_pets: Optional[int] = Field(None, ge=0)

    # Amenities
    amenities: Optional[List[str]] = None
    is_concierge: Optional[bool] = None
    smoking_area: Optional[bool] = None

    # Personal
    hobbies: Optional[List[str]] = None
    ideal_living_environment: Optional[List[str]] = None
    smoker: Optional[str] = None
    additional_info: Optional[str] = None

    class Config:
        extra = "ignore"
        json_schema_extra = {
            "example": {
                "preferred_metro_stations": ["King's Cross"],
                "min_price": 1500,
                "max_price": 2500,
                "bedrooms": [1, 2],
                "property_types": ["apartment"],
                "pet_policy": True,
                "pets": [{"type": "dog", "size": "small"}],
            }
        }


PREFERENCE_FIELDS = tuple(PreferencesFields.model_fields)


class PreferencesRead(PreferencesFields):
    id: UUID
    user_id: UUID
    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PreferencesFormData(BaseModel):
    """Wizard form state.

    Multi-select and toggle groups are held in the shape the form widgets use
    (``rooms_preferences`` as ``["1", "5+"]``, ``outdoor_space_preferences`` as
    labels, ...). ``transforms.transform_form_data_for_api`` is the only place
    these are reconciled with the persisted field names.
    """

    # Step 1 - lifestyle
    occupation: str = ""
    family_status: str = ""
    children_count: str = ""
    # Step 2 - location
    preferred_metro_stations: List[str] = Field(default_factory=list)
    preferred_essentials: List[str] = Field(default_factory=list)
    preferred_commute_times: List[str] = Field(default_factory=list)
    # Step 3 - budget & move-in
    move_in_date: Optional[date] = None
    move_out_date: Optional[date] = None
    min_price: Optional[int] = None
    max_price: Optional[int] = None
    deposit_preference: str = ""
    # Step 4 - property & rooms
    property_type_preferences: List[str] = Field(default_factory=list)
    rooms_preferences: List[str] = Field(default_factory=list)
    bathrooms_preferences: List[str] = Field(default_factory=list)
    furnishing_preferences: List[str] = Field(default_factory=list)
    outdoor_space_preferences: List[str] = Field(default_factory=list)
    min_square_meters: Optional[int] = None
    max_square_meters: Optional[int] = None
    # Step 5 - building & duration
    building_style_preferences: List[str] = Field(default_factory=list)
    selected_duration: str = ""
    selected_bills: str = ""
    # Step 6 - tenant type
    tenant_type_preferences: List[str] = Field(default_factory=list)
    # Step 7 - pets
    pet_type_preferences: List[str] = Field(default_factory=list)
    pet_additional_info: str = ""
    dog_size: str = ""
    number_of_pets: Optional[int] = None
    # Step 8 - amenities
    amenities_preferences: List[str] = Field(default_factory=list)
    additional_preferences: List[str] = Field(default_factory=list)
    # Step 9 - hobbies
    hobbies: List[str] = Field(default_factory=list)
    # Step 10 - living environment
    ideal_living_environment: List[str] = Field(default_factory=list)
    smoker: str = ""
    # Step 11 - about you
    preferred_address: str = ""
    additional_info: str = ""

    class Config:
        extra = "forbid"


FORM_FIELDS = tuple(PreferencesFormData.model_fields)


def _as_date(value: Any) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def range_errors(data: Mapping[str, Any]) -> Dict[str, str]:
    """Cross-field ordering checks. Keys are the field the message belongs to."""
    errors: Dict[str, str] = {}

    min_price, max_price = data.get("min_price"), data.get("max_price")
    if min_price is not None and max_price is not None and max_price < min_price:
        errors["max_price"] = "Maximum price must be greater than or equal to minimum price"

    min_sqm, max_sqm = data.get("min_square_meters"), data.get("max_square_meters")
    if min_sqm is not None and max_sqm is not None and max_sqm < min_sqm:
        errors["max_square_meters"] = "Maximum size must be greater than or equal to minimum size"

    move_in, move_out = _as_date(data.get("move_in_date")), _as_date(data.get("move_out_date"))
    if move_in is not None and move_out is not None and move_out < move_in:
        errors["move_out_date"] = "Move-out date must be on or after the move-in date"

    return errors


def validation_errors(data: Mapping[str, Any]) -> Dict[str, str]:
    """Field -> message map for a (possibly partial) preferences payload."""
    errors: Dict[str, str] = {}
    try:
        PreferencesFields.model_validate(dict(data))
    except ValidationError as exc:
        for err in exc.errors():
            field = str(err["loc"][0]) if err["loc"] else "__all__"
            errors.setdefault(field, err["msg"])
    for field, message in range_errors(data).items():
        errors.setdefault(field, message)
    return errors
