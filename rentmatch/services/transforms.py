"""Conversions between the wizard form, persisted preferences and scored properties.

The wizard edits ``PreferencesFormData`` whose multi-select widgets use their own
field names and labels; the store speaks ``PreferencesFields``. All alias
reconciliation happens here, once, in both directions.
"""
import json
import re
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import BaseModel

from rentmatch.schemas.preferences import (
    FORM_FIELDS,
    PET_TYPES,
    PREFERENCE_FIELDS,
    PreferencesFormData,
)

BEDROOMS_CAP = 5
BATHROOMS_CAP = 4

OUTDOOR_LABELS = {
    "outdoor_space": "Outdoor Space",
    "balcony": "Balcony",
    "terrace": "Terrace",
}
NO_PETS = "No pets"
PLANNING_PET = "Planning to get a pet"
OTHER_PET = "Other"
DOG_SIZE_LABELS = {
    "small": "Small (<10kg)",
    "medium": "Medium (10-25kg)",
    "large": "Large (>25kg)",
}
SMOKER_TO_API = {"smoker": "yes", "non-smoker": "no"}
SMOKER_TO_FORM = {v: k for k, v in SMOKER_TO_API.items()}

# Tenant-type vocabulary shared with listings: label keyword -> stored code
TENANT_TYPE_CODES = {
    "corporate": "corporateLets",
    "sharer": "sharers",
    "student": "student",
    "family": "family",
    "elder": "elder",
}
TENANT_TYPE_LABELS = {
    "corporateLets": "Corporate Lets",
    "sharers": "Sharers",
    "student": "Student",
    "family": "Family",
    "elder": "Elder",
}

# UI alias -> persisted field, same value shape
_RENAMED = {
    "furnishing_preferences": "furnishing",
    "property_type_preferences": "property_types",
    "building_style_preferences": "building_types",
    "selected_duration": "let_duration",
    "selected_bills": "bills",
    "amenities_preferences": "amenities",
}
PASSTHROUGH_FIELDS = tuple(f for f in FORM_FIELDS if f in PREFERENCE_FIELDS)

# Fields that must be persisted together so the stored pets stay consistent
_PET_FORM_FIELDS = ("pet_type_preferences", "pet_additional_info", "dog_size")
COMPANION_FIELDS: Dict[str, tuple] = {
    field: tuple(f for f in _PET_FORM_FIELDS if f != field) for field in _PET_FORM_FIELDS
}

DATE_FIELDS = ("move_in_date", "move_out_date")


def normalize_token(value: Any) -> str:
    """Trim, casefold and unify separators: ``" Semi-Detached "`` -> ``"semi_detached"``."""
    if value is None:
        return ""
    return re.sub(r"[\s\-]+", "_", str(value).strip().casefold())


def normalize_set(values: Optional[Iterable[Any]]) -> set:
    if not values:
        return set()
    if isinstance(values, str):
        values = [values]
    return {normalize_token(v) for v in values if normalize_token(v)}


def tenant_type_code(value: Any) -> str:
    """Stored code for a tenant-type label or code (``"Corporate Lets"`` -> ``"corporateLets"``)."""
    squashed = re.sub(r"[\s_\-]+", "", str(value).casefold())
    for keyword, code in TENANT_TYPE_CODES.items():
        if keyword in squashed:
            return code
    return str(value).strip()


def tenant_type_token(value: Any) -> str:
    """Comparison key for tenant types; labels and codes of one type share a key."""
    return re.sub(r"[\s_\-]+", "", tenant_type_code(value).casefold())


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _jsonable(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    return value


def _parse_counts(values: Iterable[Any]) -> List[int]:
    counts = []
    for raw in values or []:
        match = re.match(r"\s*(\d+)\s*\+?\s*$", str(raw))
        if match:
            counts.append(int(match.group(1)))
    return counts


def _format_counts(values: Iterable[int], cap: int) -> List[str]:
    labels: List[str] = []
    for count in values or []:
        label = f"{cap}+" if count >= cap else str(count)
        if label not in labels:
            labels.append(label)
    return labels


def _dog_size(label: Optional[str]) -> Optional[str]:
    lowered = (label or "").strip().lower()
    for size in DOG_SIZE_LABELS:
        if size in lowered:
            return size
    return None


def _pets_for_api(
    pet_labels: Iterable[str], additional_info: Optional[str], dog_size: Optional[str] = None
) -> Dict[str, Any]:
    labels = [str(p).strip() for p in pet_labels or [] if str(p).strip()]
    if not labels:
        return {"pets": [], "pet_policy": None}
    custom = (additional_info or "").strip() or None
    pets: List[Dict[str, Any]] = []
    for label in labels:
        lowered = label.lower()
        if lowered in (NO_PETS.lower(), PLANNING_PET.lower()):
            continue
        kind = lowered if lowered in PET_TYPES else "other"
        if any(p["type"] == kind for p in pets):
            continue
        pet: Dict[str, Any] = {"type": kind}
        if kind == "other":
            # unlisted labels name the pet themselves
            pet_name = custom if lowered == "other" else label
            if pet_name:
                pet["custom_type"] = pet_name
        if kind == "dog" and _dog_size(dog_size):
            pet["size"] = _dog_size(dog_size)
        pets.append(pet)
    if pets:
        return {"pets": pets, "pet_policy": True}
    if PLANNING_PET.lower() in (label.lower() for label in labels):
        return {"pets": [], "pet_policy": True}
    return {"pets": [], "pet_policy": False}


def transform_form_data_for_api(
    form: Union[PreferencesFormData, Mapping[str, Any]],
) -> Dict[str, Any]:
    """Map (a subset of) form fields to persisted preference fields.

    Accepts a full ``PreferencesFormData`` or a partial mapping of form fields;
    only fields present in the input produce output. Values are JSON-ready and
    blank strings become ``None``.
    """
    data = form.model_dump() if isinstance(form, BaseModel) else dict(form)
    api: Dict[str, Any] = {}

    for field in PASSTHROUGH_FIELDS:
        if field in data and field != "smoker":
            api[field] = _jsonable(_blank_to_none(data[field]))

    if "smoker" in data:
        smoker = _blank_to_none(data["smoker"])
        api["smoker"] = SMOKER_TO_API.get(smoker, smoker) if smoker else None

    for form_field, api_field in _RENAMED.items():
        if form_field in data:
            value = data[form_field]
            api[api_field] = _blank_to_none(value) if isinstance(value, str) else list(value or [])

    if "rooms_preferences" in data:
        api["bedrooms"] = _parse_counts(data["rooms_preferences"])
    if "bathrooms_preferences" in data:
        api["bathrooms"] = _parse_counts(data["bathrooms_preferences"])

    if "outdoor_space_preferences" in data:
        prefs = [str(p).strip().lower() for p in data["outdoor_space_preferences"] or []]
        api["outdoor_space"] = any("outdoor space" in p for p in prefs)
        api["balcony"] = "balcony" in prefs
        api["terrace"] = "terrace" in prefs

    if "tenant_type_preferences" in data:
        api["tenant_types"] = [tenant_type_code(t) for t in data["tenant_type_preferences"] or [] if str(t).strip()]

    if "pet_type_preferences" in data:
        api.update(
            _pets_for_api(data["pet_type_preferences"], data.get("pet_additional_info"), data.get("dog_size"))
        )

    if "additional_preferences" in data:
        prefs = [str(p).lower() for p in data["additional_preferences"] or []]
        api["smoking_area"] = any("smoking" in p for p in prefs)
        api["is_concierge"] = any("concierge" in p for p in prefs)

    return api


def transform_api_data_for_form(record: Optional[Mapping[str, Any]]) -> PreferencesFormData:
    """Populate a form from a persisted preferences record (or defaults for ``None``)."""
    record = dict(record or {})
    form: Dict[str, Any] = {}

    for field in PASSTHROUGH_FIELDS:
        value = record.get(field)
        if value is None:
            continue
        form[field] = value

    smoker = record.get("smoker")
    form["smoker"] = SMOKER_TO_FORM.get(smoker, smoker if smoker in SMOKER_TO_API else "")

    for form_field, api_field in _RENAMED.items():
        value = record.get(api_field)
        if value is not None:
            form[form_field] = value

    form["rooms_preferences"] = _format_counts(record.get("bedrooms"), BEDROOMS_CAP)
    form["bathrooms_preferences"] = _format_counts(record.get("bathrooms"), BATHROOMS_CAP)
    form["outdoor_space_preferences"] = [
        label for field, label in OUTDOOR_LABELS.items() if record.get(field)
    ]

    form["tenant_type_preferences"] = [TENANT_TYPE_LABELS.get(t, t) for t in record.get("tenant_types") or []]

    pet_labels, additional_info, dog_size = [], "", ""
    for pet in record.get("pets") or []:
        pet = pet.model_dump() if isinstance(pet, BaseModel) else dict(pet)
        kind = str(pet.get("type") or "other").lower()
        label = OTHER_PET if kind not in PET_TYPES else kind.capitalize()
        if label not in pet_labels:
            pet_labels.append(label)
        if kind == "other" and pet.get("custom_type") and not additional_info:
            additional_info = pet["custom_type"]
        if kind == "dog" and pet.get("size") in DOG_SIZE_LABELS:
            dog_size = DOG_SIZE_LABELS[pet["size"]]
    if not pet_labels and record.get("pet_policy") is True:
        pet_labels = [PLANNING_PET]
    elif not pet_labels and record.get("pet_policy") is False:
        pet_labels = [NO_PETS]
    form["pet_type_preferences"] = pet_labels
    form["pet_additional_info"] = additional_info
    form["dog_size"] = dog_size

    form["additional_preferences"] = [
        flag for flag in ("smoking_area", "is_concierge") if record.get(flag)
    ]

    return PreferencesFormData.model_validate(form)


def _canonical(value: Any) -> Any:
    if value is None or value is False or value == "" or value == [] or value == {}:
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()[:10] if not isinstance(value, datetime) else value.isoformat()
    if isinstance(value, BaseModel):
        return _canonical(value.model_dump(mode="json"))
    if isinstance(value, Mapping):
        items = {k: _canonical(v) for k, v in value.items()}
        return {k: v for k, v in items.items() if v is not None} or None
    if isinstance(value, (list, tuple, set)):
        return sorted(json.dumps(_canonical(v), sort_keys=True, default=str) for v in value)
    if isinstance(value, Decimal):
        value = float(value)
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def values_equal(left: Any, right: Any) -> bool:
    """Order-independent equality for persisted values; blanks, ``None``, ``False`` and ``[]`` compare equal."""
    return _canonical(left) == _canonical(right)


def diff_fields(current: Mapping[str, Any], baseline: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Fields of ``current`` that differ from ``baseline``; both dates travel together."""
    baseline = baseline or {}
    changed = {k: v for k, v in current.items() if not values_equal(v, baseline.get(k))}
    if any(f in changed for f in DATE_FIELDS):
        for f in DATE_FIELDS:
            if f in current:
                changed[f] = current[f]
    return changed


# Location and policy data a property may leave to its building
INHERITED_FROM_BUILDING = (
    "metro_stations",
    "commute_times",
    "local_essentials",
    "amenities",
    "is_concierge",
    "pet_policy",
    "pets",
    "smoking_area",
    "building_type",
)


def merge_building_into_property(prop: Any, building: Any = None) -> Dict[str, Any]:
    """Flatten a property and its building into one mapping, property values winning."""
    if isinstance(prop, BaseModel):
        data = prop.model_dump()
    else:
        data = dict(prop)
    if building is None:
        building = data.get("building")
    if building is None:
        return data
    if isinstance(building, BaseModel):
        building = building.model_dump()

    for field in INHERITED_FROM_BUILDING:
        if data.get(field) in (None, "", []) and building.get(field) not in (None, ""):
            data[field] = building[field]
    if not data.get("tenant_types") and building.get("tenant_type"):
        data["tenant_types"] = [building["tenant_type"]]
    return data
