"""Pydantic schemas for the pricing engine: rules, components, lookup data.

Pure data classes with no DB dependencies. Everything here is read-only to the
engine; rule and component authoring happens elsewhere.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    ValidationError,
    field_validator,
)

from src.models.enums import CalculationMethod, ComponentSource, ExplanationKind, Periodicity
from src.schemas.coercion import decimal_or_zero, parse_int

logger = logging.getLogger(__name__)

Money = Annotated[Decimal, BeforeValidator(decimal_or_zero)]


def _iso_date(value: Any) -> Any:
    """Accept full ISO timestamps where only the date matters."""
    if isinstance(value, str) and len(value) > 10:
        return value[:10]
    return value or None


ValidityDate = Annotated[date | None, BeforeValidator(_iso_date)]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------


class Condition(_Frozen):
    """Single test: ``fact`` (dot path) ``operator`` ``value``.

    ``operator`` is kept as the raw string so an unknown operator survives
    parsing and fails closed at evaluation time.
    """

    fact: str
    operator: str
    value: Any = None


class ConditionSet(_Frozen):
    """AND-only condition tree: every entry of ``all`` must hold.

    ``malformed`` marks a stored tree that could not be parsed; it never matches.
    """

    all: list[Condition] = Field(default_factory=list)
    malformed: bool = False

    @field_validator("all", mode="before")
    @classmethod
    def _null_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v


def lenient_condition_set(value: Any) -> ConditionSet | None:
    """Parse a stored condition tree, turning a broken one into a non-matching set."""
    if value is None or isinstance(value, ConditionSet):
        return value
    try:
        return ConditionSet.model_validate(value)
    except ValidationError:
        logger.warning("Malformed condition tree %r — treated as no match", value)
        return ConditionSet(malformed=True)


StoredConditions = Annotated[ConditionSet | None, BeforeValidator(lenient_condition_set)]


# ---------------------------------------------------------------------------
# Rule actions: tagged union on ``type``
# ---------------------------------------------------------------------------


class ComponentParams(_Frozen):
    component_id: str | None = None  # missing id: the action is skipped
    value: Decimal | None = None  # per-evaluation override of the component value

    @field_validator("value", mode="before")
    @classmethod
    def _coerce_override(cls, v: Any) -> Decimal | None:
        return None if v is None else decimal_or_zero(v)

    @field_validator("component_id", mode="before")
    @classmethod
    def _id_as_text(cls, v: Any) -> str | None:
        return None if v in (None, "") else str(v)


class PercentageParams(_Frozen):
    value: Money = Decimal("0")


class AddCostComponentAction(_Frozen):
    type: Literal["add_cost_component"] = "add_cost_component"
    params: ComponentParams = Field(default_factory=ComponentParams)


class ApplyMarkupAction(_Frozen):
    type: Literal["apply_markup_percentage"] = "apply_markup_percentage"
    params: PercentageParams = Field(default_factory=PercentageParams)


class ApplyDiscountAction(_Frozen):
    type: Literal["apply_discount_percentage"] = "apply_discount_percentage"
    params: PercentageParams = Field(default_factory=PercentageParams)


class UnsupportedAction(_Frozen):
    """Any action type the engine does not know. Ignored with a warning."""

    type: str = ""
    params: dict[str, Any] = Field(default_factory=dict)


_KNOWN_ACTIONS = frozenset({"add_cost_component", "apply_markup_percentage", "apply_discount_percentage"})


def _action_tag(value: Any) -> str:
    action_type = value.get("type") if isinstance(value, dict) else getattr(value, "type", None)
    return action_type if action_type in _KNOWN_ACTIONS else "unsupported"


RuleAction = Annotated[
    Annotated[AddCostComponentAction, Tag("add_cost_component")]
    | Annotated[ApplyMarkupAction, Tag("apply_markup_percentage")]
    | Annotated[ApplyDiscountAction, Tag("apply_discount_percentage")]
    | Annotated[UnsupportedAction, Tag("unsupported")],
    Discriminator(_action_tag),
]


# ---------------------------------------------------------------------------
# Persisted entities (read-only to the engine)
# ---------------------------------------------------------------------------


def _priority(value: Any) -> int:
    return parse_int(value) or 0


class PricingRule(_Frozen):
    """Conditional pricing rule. Higher ``priority`` is evaluated first."""

    id: str
    name: str = ""
    priority: Annotated[int, BeforeValidator(_priority)] = 0
    conditions: StoredConditions = None
    actions: list[RuleAction] = Field(default_factory=list)
    stop_if_matched: bool = False
    from_date: ValidityDate = None
    to_date: ValidityDate = None
    is_active: bool = True


class CostComponent(_Frozen):
    """Cost added on top of a job profile's base cost.

    A component with its own ``conditions`` is a "smart" component: it is
    applied whenever the conditions match, without any rule referencing it.
    """

    id: str
    name: str = ""
    value: Money = Decimal("0")
    calculation_method: CalculationMethod = CalculationMethod.FLAT
    periodicity: Periodicity = Periodicity.MONTHLY
    vat_applicable: bool = False
    conditions: StoredConditions = None
    from_date: ValidityDate = None
    to_date: ValidityDate = None
    is_active: bool = True

    @field_validator("calculation_method", mode="before")
    @classmethod
    def _unknown_method_is_flat(cls, v: Any) -> Any:
        try:
            return CalculationMethod(v)
        except ValueError:
            return CalculationMethod.FLAT

    @field_validator("periodicity", mode="before")
    @classmethod
    def _unknown_periodicity_is_one_time(cls, v: Any) -> Any:
        try:
            return Periodicity(v)
        except ValueError:
            return Periodicity.ONE_TIME

    @property
    def is_smart(self) -> bool:
        return bool(self.conditions and (self.conditions.all or self.conditions.malformed))


class JobProfile(_Frozen):
    """Priced role: monthly per-unit base cost plus default components."""

    id: str
    job_title: str = ""
    base_cost: Money = Decimal("0")
    default_cost_components: list[str] = Field(default_factory=list)
    category: str | None = None


class Nationality(_Frozen):
    id: str
    name: str = ""
    default_cost_components: list[str] = Field(default_factory=list)


class SystemSetting(_Frozen):
    """Key/value row from the system settings store."""

    key: str
    value: str | None = None


class LookupData(_Frozen):
    """Reference data snapshot the calculator prices against."""

    job_profiles: list[JobProfile] = Field(default_factory=list)
    cost_components: list[CostComponent] = Field(default_factory=list)
    nationalities: list[Nationality] = Field(default_factory=list)
    pricing_rules: list[PricingRule] = Field(default_factory=list)

    def job_profile(self, profile_id: str | None) -> JobProfile | None:
        if not profile_id:
            return None
        return next((p for p in self.job_profiles if p.id == profile_id), None)

    def component(self, component_id: str | None) -> CostComponent | None:
        if not component_id:
            return None
        return next((c for c in self.cost_components if c.id == component_id), None)

    def nationality(self, nationality_id: str | None) -> Nationality | None:
        if not nationality_id:
            return None
        return next((n for n in self.nationalities if n.id == nationality_id), None)


class PricingContext(_Frozen):
    """Everything a recalculation needs besides the quote itself."""

    vat_rate: Money = Decimal("0")
    lookup: LookupData = Field(default_factory=LookupData)
    as_of: date | None = None


# ---------------------------------------------------------------------------
# Engine outputs
# ---------------------------------------------------------------------------


class AppliedRule(_Frozen):
    """One entry in the explanation trail shown next to a price."""

    kind: ExplanationKind
    source_id: str | None = None
    name: str
    explanation: str


class AppliedComponent(_Frozen):
    """A component selected for pricing, with the value used this time."""

    component: CostComponent
    applied_value: Decimal
    source: ComponentSource


class RuleOutcome(_Frozen):
    """Result of running smart components and pricing rules over facts."""

    components: dict[str, AppliedComponent] = Field(default_factory=dict)
    markup_percentage: Decimal = Decimal("0")
    discount_percentage: Decimal = Decimal("0")
    applied_rules: list[AppliedRule] = Field(default_factory=list)


class CostLine(_Frozen):
    """One priced row of a line item's breakdown (base cost or component)."""

    is_base_cost: bool
    component_id: str | None = None
    name: str
    source: ComponentSource | None = None
    calculation_method: CalculationMethod | None = None
    periodicity: Periodicity
    unit_value: Decimal                 # per unit, per period
    quantity: int
    contract_duration: int
    subtotal: Decimal
    discount_amount: Decimal
    after_discount: Decimal
    vat_applicable: bool
    vat_rate: Decimal
    vat_amount: Decimal
    grand_total: Decimal
    original_base_cost_per_unit: Decimal | None = None   # base cost line only
