"""Structured extraction schemas and the partial-record merge.

Every follow-up request names one of the registered diff models. The model
is sent to the chat API as the response JSON schema and is used again to
validate what comes back. Field names on the wire are camelCase, matching
the records the rest of the platform stores.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..utils.errors import UnknownSchema


class DiffModel(BaseModel):
    """Base for every extraction diff: camelCase on the wire, snake_case in code."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_diff(self) -> Dict[str, Any]:
        """Dump only the fields the model produced, with wire names.

        Schema defaults the answer did not set are left out.
        """
        return self.model_dump(by_alias=True, exclude_unset=True, exclude_none=True)


# ===== INDUSTRY =====
class IndustryCode(DiffModel):
    sub_industry_code: str = Field(..., description="GICS sub-industry code")


class IndustryDiff(DiffModel):
    industry: IndustryCode


# ===== GOALS & INITIATIVES =====
class Goal(DiffModel):
    description: str
    year: Optional[str] = None
    target: Optional[float] = None
    base_year: Optional[str] = None


class GoalsDiff(DiffModel):
    goals: List[Goal]


class Initiative(DiffModel):
    title: str
    description: Optional[str] = None
    year: Optional[str] = None
    scope: Optional[str] = None


class InitiativesDiff(DiffModel):
    initiatives: List[Initiative]


# ===== EMISSIONS =====
class Scope1Period(DiffModel):
    year: int
    total: float
    unit: str = "tCO2e"


class Scope1Diff(DiffModel):
    scope1: List[Scope1Period]


class Scope2Period(DiffModel):
    year: int
    mb: Optional[float] = Field(None, description="Market-based scope 2")
    lb: Optional[float] = Field(None, description="Location-based scope 2")
    unknown: Optional[float] = None
    unit: str = "tCO2e"


class Scope2Diff(DiffModel):
    scope2: List[Scope2Period]


class Scope3Category(DiffModel):
    category: int = Field(..., ge=1, le=16)
    total: float
    unit: str = "tCO2e"


class StatedTotal(DiffModel):
    total: float
    unit: str = "tCO2e"


class Scope3Period(DiffModel):
    year: int
    stated_total_emissions: Optional[StatedTotal] = None
    categories: List[Scope3Category] = Field(default_factory=list)


class Scope3Diff(DiffModel):
    scope3: List[Scope3Period]


# ===== ECONOMY =====
class Turnover(DiffModel):
    value: float
    currency: str


class Employees(DiffModel):
    value: float
    unit: str = "FTE"


class EconomyPeriod(DiffModel):
    year: int
    turnover: Optional[Turnover] = None
    employees: Optional[Employees] = None


class EconomyDiff(DiffModel):
    economy: List[EconomyPeriod]


class BaseYearDiff(DiffModel):
    base_year: int


# ===== EQUALITY GOALS (auxiliary extraction) =====
class EqualityGoal(DiffModel):
    description: str
    year: Optional[str] = None
    target_percentage: Optional[float] = None
    base_year: Optional[str] = None


class EqualityGoals(DiffModel):
    equality_goals: List[EqualityGoal]


SCHEMAS: Dict[str, Type[DiffModel]] = {
    "industry": IndustryDiff,
    "goals": GoalsDiff,
    "initiatives": InitiativesDiff,
    "scope1": Scope1Diff,
    "scope2": Scope2Diff,
    "scope3": Scope3Diff,
    "economy": EconomyDiff,
    "baseYear": BaseYearDiff,
    "equalityGoals": EqualityGoals,
}


def get_schema(name: str) -> Type[DiffModel]:
    """Resolve a schema reference from a job payload.

    Raises:
        UnknownSchema: If no diff model is registered under ``name``
    """
    try:
        return SCHEMAS[name]
    except KeyError:
        raise UnknownSchema(
            f"Unknown schema '{name}'. Registered: {', '.join(sorted(SCHEMAS))}"
        ) from None


def schema_name(schema: Type[BaseModel]) -> str:
    """Registry name for a model, falling back to its class name."""
    for name, model in SCHEMAS.items():
        if model is schema:
            return name
    return schema.__name__


def response_format(schema: Type[BaseModel]) -> Dict[str, Any]:
    """Chat-completions ``response_format`` constraining output to ``schema``."""
    return {
        "type": "json_schema",
        "json_schema": {
            "name": schema_name(schema),
            "schema": schema.model_json_schema(by_alias=True),
            "strict": False,
        },
    }


@dataclass(frozen=True)
class PartialRecord:
    """A company record, or part of one, as plain JSON-compatible fields.

    Merging is a field-wise override at the top level: each field present
    in the diff replaces the record's field of the same name, fields the
    diff does not mention are kept, and ``None`` in a diff means "no change".
    """

    fields: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, text: Optional[str]) -> "PartialRecord":
        """Parse a record from JSON text. Blank text is an empty record.

        Raises:
            ValueError: If the text is not a JSON object
        """
        if text is None or not text.strip():
            return cls({})
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError(
                f"Expected a JSON object, got {type(data).__name__}"
            )
        return cls(data)

    def merge(
        self, diff: Union["PartialRecord", BaseModel, Mapping[str, Any]]
    ) -> "PartialRecord":
        if isinstance(diff, PartialRecord):
            changes = diff.fields
        elif isinstance(diff, DiffModel):
            changes = diff.to_diff()
        elif isinstance(diff, BaseModel):
            changes = diff.model_dump(by_alias=True, exclude_unset=True, exclude_none=True)
        else:
            changes = diff

        merged = dict(self.fields)
        for key, value in changes.items():
            if value is not None:
                merged[key] = value
        return PartialRecord(merged)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.fields)

    def to_json(self) -> str:
        return json.dumps(self.fields, ensure_ascii=False, indent=2)


__all__ = [
    "DiffModel",
    "IndustryDiff",
    "GoalsDiff",
    "InitiativesDiff",
    "Scope1Diff",
    "Scope2Diff",
    "Scope3Diff",
    "EconomyDiff",
    "BaseYearDiff",
    "EqualityGoal",
    "EqualityGoals",
    "SCHEMAS",
    "get_schema",
    "schema_name",
    "response_format",
    "PartialRecord",
]
