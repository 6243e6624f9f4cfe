import uuid

import pytest
from hypothesis import given, settings as hypothesis_settings, strategies as st

from rentmatch.services.matching import (
    DEFAULT_WEIGHTS,
    TIER_ORDER,
    MatchingOptions,
    rank_properties,
    score_property,
)
from tests.conftest import make_building, make_property

EXAMPLE_PREFERENCES = {"min_price": 1000, "max_price": 2000, "bedrooms": [1, 2], "pet_policy": True}


def category(result, name):
    return next(c for c in result.match_categories if c.category == name)


def assert_presentation_order(result):
    keys = [(TIER_ORDER[c.tier], -DEFAULT_WEIGHTS[c.category]) for c in result.match_categories]
    assert keys == sorted(keys)


def test_example_full_match_scores_100():
    result = score_property(EXAMPLE_PREFERENCES, {"price": 1800, "bedrooms": 2, "pet_policy": True})

    stated = {c.category for c in result.match_categories if c.has_preference}
    assert stated == {"budget", "bedrooms", "pets"}
    assert result.match_score == 100
    assert result.is_perfect_match
    assert result.summary.matched == 3
    assert result.summary.skipped == len(DEFAULT_WEIGHTS) - 3


def test_example_mismatch_scores_0():
    result = score_property(EXAMPLE_PREFERENCES, {"price": 2500, "bedrooms": 3, "pet_policy": False})

    assert result.match_score == 0
    for name in ("budget", "bedrooms", "pets"):
        assert category(result, name).score == 0
        assert category(result, name).tier == "none"
    assert result.summary.not_matched == 3


def test_no_preferences_scores_0():
    result = score_property({}, {"price": 1500, "bedrooms": 2})

    assert result.match_score == 0
    assert result.max_possible_score == 0
    assert not result.is_perfect_match
    assert all(not c.has_preference and c.max_score == 0 for c in result.match_categories)


def test_every_category_satisfied_scores_100():
    preferences = {
        "min_price": 1000,
        "max_price": 2000,
        "move_in_date": "2026-01-10",
        "deposit_preference": "yes",
        "property_types": ["Flat"],
        "bedrooms": [2],
        "bathrooms": [1],
        "building_types": ["new_build"],
        "let_duration": "long_term",
        "min_square_meters": 50,
        "max_square_meters": 80,
        "bills": "included",
        "tenant_types": ["professional"],
        "pet_policy": True,
        "pets": [{"type": "dog"}],
        "amenities": ["gym"],
        "balcony": True,
        "furnishing": ["furnished"],
        "preferred_metro_stations": ["Angel"],
        "is_concierge": True,
        "smoking_area": True,
    }
    prop = {
        "price": 1500,
        "available_from": "2026-01-01",
        "deposit": 1500,
        "property_type": "flat",
        "bedrooms": 2,
        "bathrooms": 1,
        "building_type": "new_build",
        "let_duration": "long_term",
        "square_meters": 60,
        "bills": "included",
        "tenant_types": ["professional", "student"],
        "pet_policy": True,
        "pets": [{"type": "dog"}],
        "amenities": ["gym", "pool"],
        "balcony": True,
        "furnishing": "furnished",
        "metro_stations": [{"label": "Angel", "destination": 5}],
        "is_concierge": True,
        "smoking_area": True,
    }

    result = score_property(preferences, prop)

    assert all(c.has_preference for c in result.match_categories)
    assert result.match_score == 100
    assert result.summary.matched == len(DEFAULT_WEIGHTS)


def test_score_is_ratio_of_stated_categories():
    # budget 5% over max (half of budget weight) and bedrooms matched
    result = score_property({"max_price": 2000, "bedrooms": [2]}, {"price": 2100, "bedrooms": 2})

    budget = category(result, "budget")
    assert budget.tier == "partial"
    assert budget.score == pytest.approx(10)
    assert result.total_score == pytest.approx(20)
    assert result.max_possible_score == 30
    assert result.match_score == pytest.approx(100 * 20 / 30)


def test_categories_sorted_full_partial_none_then_skipped():
    preferences = {
        "max_price": 2000,
        "bedrooms": [2],
        "property_types": ["house"],
        "amenities": ["gym", "pool"],
        "bills": "included",
        "furnishing": ["furnished"],
    }
    prop = {
        "price": 2100,
        "bedrooms": 2,
        "property_type": "flat",
        "amenities": ["gym"],
        "bills": "some_included",
        "furnishing": "furnished",
    }

    result = score_property(preferences, prop)

    tiers = [c.tier for c in result.match_categories]
    assert tiers[:2] == ["full", "full"]
    assert [c.category for c in result.match_categories[:2]] == ["bedrooms", "furnishing"]
    assert tiers[2:5] == ["partial", "partial", "partial"]
    # equal weights fall back to category name
    assert [c.category for c in result.match_categories[2:5]] == ["budget", "amenities", "bills"]
    assert tiers[5] == "none"
    assert set(tiers[6:]) == {"skipped"}
    assert_presentation_order(result)


def test_eighty_percent_counts_as_full_tier():
    result = score_property({"let_duration": "long-term"}, {"let_duration": "Long term 24 months"})

    let = category(result, "let_duration")
    assert let.score == pytest.approx(0.8 * DEFAULT_WEIGHTS["let_duration"])
    assert let.tier == "full"
    assert result.match_score == pytest.approx(80)


def test_missing_property_data_scores_zero():
    preferences = {"min_square_meters": 40, "move_in_date": "2026-03-01", "amenities": ["gym"]}

    result = score_property(preferences, {"price": 1200})

    for name in ("square_meters", "availability", "amenities"):
        match = category(result, name)
        assert match.has_preference
        assert match.score == 0
    assert result.match_score == 0


def test_malformed_property_data_never_raises():
    preferences = {
        "max_price": 2000,
        "bedrooms": [2],
        "preferred_metro_stations": ["Angel"],
        "preferred_commute_times": ["30"],
        "pets": ["dog"],
        "pet_policy": True,
    }
    prop = {
        "price": "not a number",
        "bedrooms": "three",
        "metro_stations": 42,
        "commute_times": "garbage",
        "pets": [None, 7],
        "pet_policy": True,
    }

    result = score_property(preferences, prop)

    assert category(result, "budget").score == 0
    assert category(result, "bedrooms").score == 0
    assert category(result, "location").score == 0
    assert 0 <= result.match_score <= 100


def test_preference_values_are_normalized():
    preferences = {"property_types": [" Apartment "], "building_types": ["semi-detached"], "furnishing": ["FURNISHED"]}
    prop = {"property_type": "apartment", "building_type": "Semi Detached", "furnishing": "furnished"}

    assert score_property(preferences, prop).match_score == 100


def test_bedroom_cap_matches_larger_homes():
    result = score_property({"bedrooms": [5]}, {"bedrooms": 6})

    assert category(result, "bedrooms").tier == "full"


def test_extra_bathroom_is_partial_fewer_is_none():
    over = score_property({"bathrooms": [2]}, {"bathrooms": 3})
    under = score_property({"bathrooms": [2]}, {"bathrooms": 1})

    assert category(over, "bathrooms").tier == "partial"
    assert category(under, "bathrooms").tier == "none"


def test_pets_partially_allowed():
    preferences = {"pet_policy": True, "pets": [{"type": "dog"}, {"type": "cat"}]}
    result = score_property(preferences, {"pet_policy": True, "pets": [{"type": "cat"}]})

    assert category(result, "pets").score == pytest.approx(DEFAULT_WEIGHTS["pets"] / 2)


def test_tenant_type_all_is_full_match():
    result = score_property({"tenant_types": ["student"]}, {"tenant_types": ["All"]})

    assert category(result, "tenant_type").tier == "full"


@pytest.mark.parametrize(
    "wanted, offered",
    [(["Corporate Lets"], ["corporateLets"]), (["corporateLets"], ["Corporate Lets"]), (["Sharers"], ["sharers"])],
)
def test_tenant_type_label_matches_listing_code(wanted, offered):
    result = score_property({"tenant_types": wanted}, {"tenant_types": offered})

    assert category(result, "tenant_type").tier == "full"


def test_tenant_type_from_building_code():
    building = make_building(tenant_type="corporateLets")
    prop = make_property(building=building, building_id=building.id)

    result = score_property({"tenant_types": ["Corporate Lets"]}, prop)

    assert category(result, "tenant_type").tier == "full"


def test_location_partial_on_short_commute():
    preferences = {"preferred_metro_stations": ["Bank"]}
    prop = {"metro_stations": [{"label": "Angel"}], "commute_times": [{"label": "City", "destination": 20}]}

    location = category(score_property(preferences, prop), "location")

    assert location.tier == "partial"
    assert location.score == pytest.approx(0.7 * DEFAULT_WEIGHTS["location"])


def test_building_fills_in_missing_property_data():
    building = make_building(
        metro_stations=[{"label": "King's Cross St Pancras", "destination": 4}],
        amenities=["gym"],
        is_concierge=True,
        tenant_type="professional",
    )
    prop = make_property(building_id=building.id, amenities=None)
    preferences = {
        "preferred_metro_stations": ["King's Cross"],
        "amenities": ["Gym"],
        "is_concierge": True,
        "tenant_types": ["professional"],
    }

    without_building = score_property(preferences, prop)
    with_building = score_property(preferences, prop, building)

    assert without_building.match_score == 0
    assert with_building.match_score == 100


def test_property_values_win_over_building():
    building = make_building(pet_policy=True)
    prop = make_property(pet_policy=False, building=building)

    result = score_property({"pet_policy": True}, prop)

    assert category(result, "pets").score == 0


def test_weight_override_disables_category():
    options = MatchingOptions(weights={**DEFAULT_WEIGHTS, "budget": 0})
    result = score_property(EXAMPLE_PREFERENCES, {"price": 5000, "bedrooms": 2, "pet_policy": True}, weights=options.weights)

    assert not category(result, "budget").has_preference
    assert result.match_score == 100


def test_serializes_with_camel_case_aliases():
    payload = score_property(EXAMPLE_PREFERENCES, {"price": 1800, "bedrooms": 2, "pet_policy": True}).model_dump(
        by_alias=True
    )

    assert payload["matchScore"] == 100
    first = payload["matchCategories"][0]
    assert {"category", "score", "maxScore", "hasPreference"} <= set(first)


def test_rank_properties_orders_filters_and_limits():
    best = make_property(title="best", price=1500, bedrooms=2, pet_policy=True)
    partial = make_property(title="partial", price=2100, bedrooms=2, pet_policy=True)
    worst = make_property(title="worst", price=4000, bedrooms=4, pet_policy=False)

    ranked = rank_properties(EXAMPLE_PREFERENCES, [worst, partial, best])
    assert [m.property.title for m in ranked] == ["best", "partial", "worst"]

    filtered = rank_properties(EXAMPLE_PREFERENCES, [worst, partial, best], min_score=50)
    assert [m.property.title for m in filtered] == ["best", "partial"]

    limited = rank_properties(EXAMPLE_PREFERENCES, [worst, partial, best], limit=1)
    assert [m.property.title for m in limited] == ["best"]


def test_rank_properties_accepts_mappings():
    ranked = rank_properties(EXAMPLE_PREFERENCES, [{"id": str(uuid.uuid4()), "title": "x", "price": 1500}])

    assert ranked[0].property.title == "x"


preference_values = st.fixed_dictionaries(
    {},
    optional={
        "min_price": st.integers(0, 5000),
        "max_price": st.integers(0, 5000),
        "bedrooms": st.lists(st.integers(0, 6), max_size=3),
        "bathrooms": st.lists(st.integers(0, 4), max_size=3),
        "property_types": st.lists(st.sampled_from(["flat", "house", "studio"]), max_size=3),
        "amenities": st.lists(st.sampled_from(["gym", "pool", "parking"]), max_size=3),
        "pet_policy": st.booleans(),
        "balcony": st.booleans(),
        "min_square_meters": st.integers(0, 200),
        "bills": st.sampled_from(["included", "excluded", "some_included"]),
    },
)
property_values = st.fixed_dictionaries(
    {},
    optional={
        "price": st.one_of(st.none(), st.floats(0, 10000, allow_nan=False)),
        "bedrooms": st.one_of(st.none(), st.integers(0, 8)),
        "bathrooms": st.one_of(st.none(), st.integers(0, 5)),
        "property_type": st.one_of(st.none(), st.sampled_from(["flat", "house", "studio"])),
        "amenities": st.lists(st.sampled_from(["gym", "pool", "parking"]), max_size=3),
        "pet_policy": st.one_of(st.none(), st.booleans()),
        "balcony": st.one_of(st.none(), st.booleans()),
        "square_meters": st.one_of(st.none(), st.floats(0, 400, allow_nan=False)),
        "bills": st.one_of(st.none(), st.sampled_from(["included", "excluded", "some_included"])),
    },
)


@hypothesis_settings(max_examples=200, deadline=None)
@given(preferences=preference_values, prop=property_values)
def test_match_score_is_bounded(preferences, prop):
    result = score_property(preferences, prop)

    assert 0 <= result.match_score <= 100
    for c in result.match_categories:
        assert 0 <= c.score <= c.max_score
    assert_presentation_order(result)


def _distance_outside(value, low, high):
    if value < low:
        return low - value
    if value > high:
        return value - high
    return 0


@pytest.mark.parametrize("low, high", [(1000, 6000), (0, 2000)])
@hypothesis_settings(max_examples=100, deadline=None)
@given(a=st.floats(0, 1, allow_nan=False), b=st.floats(0, 1, allow_nan=False))
def test_budget_score_is_monotonic_in_distance(low, high, a, b):
    # prices on one side of the 1000-2000 range at a time
    preferences = {"min_price": 1000, "max_price": 2000}
    side = [low + a * (high - low), low + b * (high - low)]
    near, far = sorted(side, key=lambda p: _distance_outside(p, 1000, 2000))

    near_score = category(score_property(preferences, {"price": near}), "budget").score
    far_score = category(score_property(preferences, {"price": far}), "budget").score

    assert near_score >= far_score


@hypothesis_settings(max_examples=200, deadline=None)
@given(a=st.floats(0, 300, allow_nan=False), b=st.floats(0, 300, allow_nan=False))
def test_square_meters_score_is_monotonic_in_distance(a, b):
    preferences = {"min_square_meters": 50, "max_square_meters": 50}
    near, far = sorted((a, b), key=lambda v: abs(v - 50))

    near_score = category(score_property(preferences, {"square_meters": near}), "square_meters").score
    far_score = category(score_property(preferences, {"square_meters": far}), "square_meters").score

    assert near_score >= far_score


@given(a=st.integers(0, 10), b=st.integers(0, 10))
def test_bedrooms_score_is_monotonic_in_distance(a, b):
    preferences = {"bedrooms": [2, 3]}
    near, far = sorted((a, b), key=lambda v: _distance_outside(v, 2, 3))

    near_score = category(score_property(preferences, {"bedrooms": near}), "bedrooms").score
    far_score = category(score_property(preferences, {"bedrooms": far}), "bedrooms").score

    assert near_score >= far_score
