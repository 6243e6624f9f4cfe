from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from rentmatch.schemas.property import PropertyRead

MatchTier = Literal["full", "partial", "none", "skipped"]


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True


class CategoryMatch(CamelModel):
    category: str
    score: float = 0.0
    max_score: float = 0.0
    has_preference: bool = False
    tier: MatchTier = "skipped"
    reason: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)


class MatchSummary(CamelModel):
    matched: int = 0
    partial: int = 0
    not_matched: int = 0
    skipped: int = 0


class MatchResult(CamelModel):
    match_score: float = 0.0
    total_score: float = 0.0
    max_possible_score: float = 0.0
    is_perfect_match: bool = False
    match_categories: List[CategoryMatch] = Field(default_factory=list)
    summary: MatchSummary = Field(default_factory=MatchSummary)


class MatchedProperty(CamelModel):
    property: PropertyRead
    match: MatchResult


class MatchesResponse(CamelModel):
    total: int
    results: List[MatchedProperty]
