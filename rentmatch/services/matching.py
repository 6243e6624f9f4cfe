"""Weighted property/preferences match scoring.

Every category rule maps ``(preferences, property)`` to ``None`` when the tenant
stated no preference, otherwise to ``(fraction, reason, details)`` where
``fraction`` is in ``[0, 1]``. The category score is ``fraction * weight``.
Rules never raise on missing or malformed property data; such data scores 0.
"""
import math
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic import BaseModel, Field
from structlog import get_logger

from rentmatch.config import settings
from rentmatch.schemas.matching import CategoryMatch, MatchedProperty, MatchResult, MatchSummary
from rentmatch.schemas.property import PropertyRead
from rentmatch.services.transforms import (
    merge_building_into_property,
    normalize_set,
    normalize_token,
    tenant_type_token,
)

logger = get_logger(__name__)

DEFAULT_WEIGHTS: Dict[str, float] = {
    "budget": 20,
    "availability": 10,
    "bedrooms": 10,
    "property_type": 8,
    "deposit": 5,
    "bathrooms": 5,
    "building_type": 5,
    "let_duration": 5,
    "square_meters": 5,
    "bills": 5,
    "tenant_type": 5,
    "pets": 5,
    "amenities": 5,
    "outdoor_space": 4,
    "furnishing": 2,
    "concierge": 2,
    "smoking_area": 2,
    "location": 1,
}

# Tolerance bands: score decays linearly to 0 at the band edge
PRICE_OVER_TOLERANCE = 0.10
PRICE_UNDER_TOLERANCE = 0.20
SQUARE_METERS_TOLERANCE = 0.15
BEDROOMS_TOLERANCE = 1
BATHROOMS_TOLERANCE = 1
BATHROOMS_OVER_TOLERANCE = 2
AVAILABILITY_TOLERANCE_DAYS = 30
BEDROOMS_CAP = 5
BATHROOMS_CAP = 4

COMMUTE_GOOD_MINUTES = 30
LOCATION_PARTIAL = 0.7
SAME_TERM_PARTIAL = 0.8
SOME_BILLS_PARTIAL = 0.6
PART_FURNISHED_PARTIAL = 0.5

ANY_TENANT = {"all", "any"}
PART_FURNISHED = {"partially_furnished", "part_furnished"}
TIER_ORDER = {"full": 0, "partial": 1, "none": 2, "skipped": 3}

Outcome = Optional[Tuple[float, str, Dict[str, Any]]]
Rule = Callable[[Mapping[str, Any], Mapping[str, Any]], Outcome]


class MatchingOptions(BaseModel):
    weights: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    full_threshold: float = Field(default_factory=lambda: settings.MATCH_FULL_THRESHOLD)


def _number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value:
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None


def _decay(distance: float, tolerance: float) -> float:
    if distance <= 0:
        return 1.0
    if tolerance <= 0:
        return 0.0
    return max(0.0, 1.0 - distance / tolerance)


def _relative(excess: float, bound: float) -> float:
    return excess / bound if bound > 0 else math.inf


def _labels(places: Any) -> List[str]:
    labels = []
    for place in places or []:
        label = place.get("label") if isinstance(place, Mapping) else place
        if label:
            labels.append(str(label).strip().casefold())
    return labels


def _pet_types(pets: Any) -> set:
    types = set()
    for pet in pets or []:
        kind = pet.get("type") if isinstance(pet, Mapping) else pet
        if kind:
            types.add(normalize_token(kind))
    return types


def _set_rule(pref_key: str, prop_key: str, label: str) -> Rule:
    """Single-valued property field against a preferred set."""

    def rule(prefs, prop):
        wanted = normalize_set(prefs.get(pref_key))
        if not wanted:
            return None
        value = normalize_token(prop.get(prop_key))
        details = {"preferred": sorted(wanted), "property": prop.get(prop_key)}
        if not value:
            return 0.0, f"{label} not listed", details
        if value in wanted:
            return 1.0, f"{label} matches", details
        return 0.0, f"{label} doesn't match", details

    return rule


def _overlap_rule(pref_key: str, prop_key: str, label: str) -> Rule:
    """Multi-valued property field: fraction of preferred values offered."""

    def rule(prefs, prop):
        wanted = normalize_set(prefs.get(pref_key))
        if not wanted:
            return None
        offered = normalize_set(prop.get(prop_key))
        matched = sorted(wanted & offered)
        details = {"preferred": sorted(wanted), "matched": matched}
        if not offered:
            return 0.0, f"{label} not listed", details
        fraction = len(matched) / len(wanted)
        if fraction >= 1:
            return 1.0, f"All preferred {label.lower()} available", details
        if matched:
            return fraction, f"{len(matched)} of {len(wanted)} preferred {label.lower()} available", details
        return 0.0, f"No preferred {label.lower()}", details

    return rule


def _count_rule(pref_key: str, prop_key: str, label: str, cap: int, tolerance: float, over_tolerance: float) -> Rule:
    """Room counts: full on a preferred count (``cap`` meaning "cap or more")."""

    def rule(prefs, prop):
        wanted = sorted({int(n) for n in (_number(v) for v in prefs.get(pref_key) or []) if n is not None})
        if not wanted:
            return None
        value = _number(prop.get(prop_key))
        details = {"preferred": wanted, "property": value}
        if value is None:
            return 0.0, f"{label} not listed", details
        if value in wanted or (wanted[-1] >= cap and value >= cap):
            return 1.0, f"{int(value)} {label.lower()}", details
        distance = min(abs(value - w) for w in wanted)
        band = over_tolerance if value > wanted[-1] else tolerance
        fraction = _decay(distance, band)
        if fraction > 0:
            return fraction, f"{int(value)} {label.lower()}, close to preference", details
        return 0.0, f"{int(value)} {label.lower()}, outside preference", details

    return rule


def _budget(prefs, prop):
    low, high = _number(prefs.get("min_price")), _number(prefs.get("max_price"))
    if low is None and high is None:
        return None
    price = _number(prop.get("price"))
    details = {"min_price": low, "max_price": high, "price": price}
    if price is None:
        return 0.0, "Price not listed", details
    if high is not None and price > high:
        fraction = _decay(_relative(price - high, high), PRICE_OVER_TOLERANCE)
        return fraction, "Slightly over budget" if fraction > 0 else "Over budget", details
    if low is not None and price < low:
        fraction = _decay(_relative(low - price, low), PRICE_UNDER_TOLERANCE)
        return fraction, "Below your minimum price", details
    return 1.0, "Within budget", details


def _availability(prefs, prop):
    move_in = _date(prefs.get("move_in_date"))
    if move_in is None:
        return None
    available = _date(prop.get("available_from"))
    details = {"move_in_date": move_in.isoformat(), "available_from": available.isoformat() if available else None}
    if available is None:
        return 0.0, "Availability not listed", details
    late_days = (available - move_in).days
    if late_days <= 0:
        return 1.0, "Available by your move-in date", details
    details["days_late"] = late_days
    fraction = _decay(late_days, AVAILABILITY_TOLERANCE_DAYS)
    return fraction, f"Available {late_days} days after your move-in date", details


def _deposit(prefs, prop):
    wanted = normalize_token(prefs.get("deposit_preference"))
    if wanted not in ("yes", "no"):
        return None
    deposit = _number(prop.get("deposit"))
    details = {"deposit_preference": wanted, "deposit": deposit}
    if deposit is None:
        return 0.0, "Deposit not listed", details
    if wanted == "yes" or deposit == 0:
        return 1.0, "Deposit terms match", details
    return 0.0, "Deposit required", details


def _let_duration(prefs, prop):
    wanted = normalize_token(prefs.get("let_duration"))
    if not wanted:
        return None
    offered = normalize_token(prop.get("let_duration"))
    details = {"preferred": wanted, "property": prop.get("let_duration")}
    if not offered:
        return 0.0, "Let duration not listed", details
    if wanted == offered or "flexible" in (wanted, offered):
        return 1.0, "Let duration matches", details
    for family in ("short", "long"):
        if family in wanted and family in offered:
            return SAME_TERM_PARTIAL, "Similar let duration", details
    return 0.0, "Let duration doesn't match", details


def _bills(prefs, prop):
    wanted = normalize_token(prefs.get("bills"))
    if not wanted:
        return None
    offered = normalize_token(prop.get("bills"))
    details = {"preferred": wanted, "property": prop.get("bills")}
    if not offered:
        return 0.0, "Bills not listed", details
    if wanted == offered or offered == "included":
        return 1.0, "Bills match", details
    if wanted == "included" and offered == "some_included":
        return SOME_BILLS_PARTIAL, "Some bills included", details
    return 0.0, "Bills don't match", details


def _square_meters(prefs, prop):
    low, high = _number(prefs.get("min_square_meters")), _number(prefs.get("max_square_meters"))
    if low is None and high is None:
        return None
    size = _number(prop.get("square_meters"))
    details = {"min_square_meters": low, "max_square_meters": high, "square_meters": size}
    if size is None:
        return 0.0, "Size not listed", details
    if low is not None and size < low:
        fraction = _decay(_relative(low - size, low), SQUARE_METERS_TOLERANCE)
        return fraction, "Smaller than preferred", details
    if high is not None and size > high:
        fraction = _decay(_relative(size - high, high), SQUARE_METERS_TOLERANCE)
        return fraction, "Larger than preferred", details
    return 1.0, "Size matches", details


def _tenant_types(values: Any) -> set:
    if isinstance(values, str):
        values = [values]
    return {tenant_type_token(v) for v in values or [] if str(v).strip()}


def _tenant_type(prefs, prop):
    wanted = _tenant_types(prefs.get("tenant_types"))
    if not wanted:
        return None
    offered = _tenant_types(prop.get("tenant_types"))
    details = {"preferred": sorted(wanted), "property": sorted(offered)}
    if not offered:
        return 0.0, "Tenant type not listed", details
    if offered & ANY_TENANT:
        return 1.0, "Open to all tenants", details
    fraction = len(wanted & offered) / len(wanted)
    if fraction >= 1:
        return 1.0, "Tenant type matches", details
    if fraction > 0:
        return fraction, "Tenant type partly matches", details
    return 0.0, "Tenant type doesn't match", details


def _pets(prefs, prop):
    wanted = _pet_types(prefs.get("pets"))
    if prefs.get("pet_policy") is not True and not wanted:
        return None
    policy = prop.get("pet_policy")
    allowed = _pet_types(prop.get("pets"))
    details = {"pets": sorted(wanted), "allowed": sorted(allowed)}
    if policy is None:
        return 0.0, "Pet policy not listed", details
    if policy is not True:
        return 0.0, "Pets not allowed", details
    if not wanted or not allowed or "all" in allowed:
        return 1.0, "Pet-friendly", details
    fraction = len(wanted & allowed) / len(wanted)
    if fraction >= 1:
        return 1.0, "Your pets are allowed", details
    if fraction > 0:
        return fraction, "Some of your pets are allowed", details
    return 0.0, "Your pets are not allowed", details


def _outdoor_space(prefs, prop):
    wanted = [flag for flag in ("outdoor_space", "balcony", "terrace") if prefs.get(flag) is True]
    if not wanted:
        return None
    present = [flag for flag in wanted if prop.get(flag) is True]
    details = {"preferred": wanted, "matched": present}
    fraction = len(present) / len(wanted)
    if fraction >= 1:
        return 1.0, "Outdoor space matches", details
    if present:
        return fraction, "Some outdoor space", details
    return 0.0, "No matching outdoor space", details


def _furnishing(prefs, prop):
    wanted = normalize_set(prefs.get("furnishing"))
    if not wanted:
        return None
    value = normalize_token(prop.get("furnishing"))
    details = {"preferred": sorted(wanted), "property": prop.get("furnishing")}
    if not value:
        return 0.0, "Furnishing not listed", details
    if value in wanted:
        return 1.0, "Furnishing matches", details
    if value in PART_FURNISHED:
        return PART_FURNISHED_PARTIAL, "Partially furnished", details
    return 0.0, "Furnishing doesn't match", details


def _flag_rule(pref_key: str, prop_key: str, label: str) -> Rule:
    def rule(prefs, prop):
        if prefs.get(pref_key) is not True:
            return None
        value = prop.get(prop_key)
        details = {"property": value}
        if value is None:
            return 0.0, f"{label} not listed", details
        if value is True:
            return 1.0, label, details
        return 0.0, f"No {label.lower()}", details

    return rule


def _location(prefs, prop):
    wanted_metro = [str(s).strip().casefold() for s in prefs.get("preferred_metro_stations") or [] if str(s).strip()]
    wanted_commute = [c for c in prefs.get("preferred_commute_times") or [] if str(c).strip()]
    wanted_essentials = normalize_set(prefs.get("preferred_essentials"))
    if not wanted_metro and not wanted_commute and not wanted_essentials:
        return None
    metro = _labels(prop.get("metro_stations"))
    details: Dict[str, Any] = {"metro_stations": metro[:2]}
    if any(w in m or m in w for w in wanted_metro for m in metro):
        return 1.0, "Near preferred metro", details

    fraction, reason = 0.0, "Not near preferred locations"
    minutes = [_number(c.get("destination")) for c in prop.get("commute_times") or [] if isinstance(c, Mapping)]
    minutes = [m for m in minutes if m is not None]
    if minutes:
        average = sum(minutes) / len(minutes)
        details["average_commute"] = round(average, 1)
        if average <= COMMUTE_GOOD_MINUTES:
            fraction, reason = LOCATION_PARTIAL, "Good commute times"
    if wanted_essentials:
        nearby = normalize_set(_labels(prop.get("local_essentials")))
        overlap = len(wanted_essentials & nearby) / len(wanted_essentials)
        details["essentials_matched"] = sorted(wanted_essentials & nearby)
        if overlap * LOCATION_PARTIAL > fraction:
            fraction, reason = overlap * LOCATION_PARTIAL, "Preferred essentials nearby"
    return fraction, reason, details


CATEGORY_RULES: Dict[str, Rule] = {
    "budget": _budget,
    "availability": _availability,
    "deposit": _deposit,
    "property_type": _set_rule("property_types", "property_type", "Property type"),
    "bedrooms": _count_rule("bedrooms", "bedrooms", "Bedrooms", BEDROOMS_CAP, BEDROOMS_TOLERANCE, BEDROOMS_TOLERANCE),
    "bathrooms": _count_rule(
        "bathrooms", "bathrooms", "Bathrooms", BATHROOMS_CAP, BATHROOMS_TOLERANCE, BATHROOMS_OVER_TOLERANCE
    ),
    "building_type": _set_rule("building_types", "building_type", "Building type"),
    "let_duration": _let_duration,
    "square_meters": _square_meters,
    "bills": _bills,
    "tenant_type": _tenant_type,
    "pets": _pets,
    "amenities": _overlap_rule("amenities", "amenities", "Amenities"),
    "outdoor_space": _outdoor_space,
    "furnishing": _furnishing,
    "location": _location,
    "concierge": _flag_rule("is_concierge", "is_concierge", "Concierge"),
    "smoking_area": _flag_rule("smoking_area", "smoking_area", "Smoking area"),
}


def _as_mapping(obj: Any) -> Dict[str, Any]:
    if obj is None:
        return {}
    if isinstance(obj, BaseModel):
        return obj.model_dump()
    return dict(obj)


def _tier(score: float, max_score: float, threshold: float) -> str:
    if max_score <= 0:
        return "skipped"
    if score >= threshold * max_score - 1e-9:
        return "full"
    if score > 0:
        return "partial"
    return "none"


def score_property(
    preferences: Any,
    prop: Any,
    building: Any = None,
    weights: Optional[Mapping[str, float]] = None,
    *,
    full_threshold: Optional[float] = None,
) -> MatchResult:
    """Score one property (with its building) against a tenant's preferences."""
    weights = DEFAULT_WEIGHTS if weights is None else weights
    threshold = settings.MATCH_FULL_THRESHOLD if full_threshold is None else full_threshold
    prefs = _as_mapping(preferences)
    data = merge_building_into_property(_as_mapping(prop), building)

    categories: List[Tuple[float, CategoryMatch]] = []
    for name, rule in CATEGORY_RULES.items():
        weight = float(weights.get(name, 0) or 0)
        try:
            outcome = rule(prefs, data)
        except (TypeError, ValueError, AttributeError, KeyError) as e:
            logger.warning("Match rule failed on property data", category=name, property_id=str(data.get("id")), error=str(e))
            outcome = (0.0, "Property data unreadable", {})
        if outcome is None or weight <= 0:
            match = CategoryMatch(
                category=name,
                has_preference=False,
                tier="skipped",
                reason="No preference" if outcome is None else "Category disabled",
            )
        else:
            fraction, reason, details = outcome
            score = weight * min(1.0, max(0.0, fraction))
            match = CategoryMatch(
                category=name,
                score=score,
                max_score=weight,
                has_preference=True,
                tier=_tier(score, weight, threshold),
                reason=reason,
                details=details,
            )
        categories.append((weight, match))

    categories.sort(key=lambda item: (TIER_ORDER[item[1].tier], -item[0], item[1].category))
    ordered = [match for _, match in categories]

    stated = [c for c in ordered if c.has_preference]
    total = sum(c.score for c in stated)
    possible = sum(c.max_score for c in stated)
    match_score = min(100.0, max(0.0, 100.0 * total / possible)) if possible > 0 else 0.0

    return MatchResult(
        match_score=match_score,
        total_score=total,
        max_possible_score=possible,
        is_perfect_match=bool(stated) and math.isclose(total, possible),
        match_categories=ordered,
        summary=MatchSummary(
            matched=sum(1 for c in stated if c.tier == "full"),
            partial=sum(1 for c in stated if c.tier == "partial"),
            not_matched=sum(1 for c in stated if c.tier == "none"),
            skipped=len(ordered) - len(stated),
        ),
    )


def rank_properties(
    preferences: Any,
    properties: Iterable[Any],
    *,
    min_score: float = 0,
    limit: Optional[int] = None,
    options: Optional[MatchingOptions] = None,
) -> List[MatchedProperty]:
    """Score every property and return them best match first."""
    options = options or MatchingOptions()
    ranked = []
    for prop in properties:
        prop = prop if isinstance(prop, PropertyRead) else PropertyRead.model_validate(prop)
        result = score_property(
            preferences, prop, prop.building, options.weights, full_threshold=options.full_threshold
        )
        if result.match_score >= min_score:
            ranked.append(MatchedProperty(property=prop, match=result))
    ranked.sort(key=lambda m: m.match.match_score, reverse=True)
    if limit is not None:
        ranked = ranked[:limit]
    logger.debug("Properties ranked", scored=len(ranked), min_score=min_score, limit=limit)
    return ranked
