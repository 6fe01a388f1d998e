from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Mapping

from django.utils import timezone


logger = logging.getLogger(__name__)

_HUNDRED = Decimal("100")
_CENT = Decimal("0.01")
_ZERO = Decimal("0.00")

SOURCE_EMPLOYEE = "employee"
SOURCE_AGENT = "agent"
SOURCE_MISP = "misp"
SOURCE_DIRECT = "direct"
SOURCE_TYPES = frozenset((SOURCE_EMPLOYEE, SOURCE_AGENT, SOURCE_MISP, SOURCE_DIRECT))

STATUS_CALCULATED = "calculated"
STATUS_NO_GRID_MATCH = "no_grid_match"
STATUS_ERROR = "error"

DATE_BASIS_RUN_DATE = "run_date"
DATE_BASIS_POLICY_START = "policy_start"


class CommissionEngineError(RuntimeError):
    """Base error for commission engine failures."""


class InvalidInputError(CommissionEngineError):
    """Raised when a policy or grid row cannot be evaluated."""


class SourceLookupError(CommissionEngineError):
    """Raised when the source entity referenced by a policy is unknown."""


class PersistenceError(CommissionEngineError):
    """Raised when a commission record cannot be written."""


@dataclass(frozen=True, slots=True)
class PolicySnapshot:
    policy_id: int
    policy_number: str
    product_type: str
    provider: str
    premium_amount: Decimal
    source_type: str = SOURCE_DIRECT
    source_id: int | None = None
    customer_ref: str = ""
    customer_name: str = ""
    start_date: date | None = None
    end_date: date | None = None


@dataclass(frozen=True, slots=True)
class TierShare:
    tier_id: int
    name: str
    share_percentage: Decimal


@dataclass(frozen=True, slots=True)
class SourceSnapshot:
    source_type: str
    source_id: int
    name: str = ""
    tier: TierShare | None = None
    agent_type: str = ""
    override_percentage: Decimal | None = None
    reporting_employee_id: int | None = None


@dataclass(frozen=True, slots=True)
class GridEntry:
    grid_id: int
    rate_id: int
    grid_table: str
    product_type: str
    base_rate: Decimal
    reward_rate: Decimal = _ZERO
    bonus_rate: Decimal = _ZERO
    provider: str = ""
    tier_id: int | None = None
    agent_type: str = ""
    effective_from: date | None = None
    effective_to: date | None = None
    min_premium: Decimal | None = None
    max_premium: Decimal | None = None
    is_active: bool = True


@dataclass(frozen=True, slots=True)
class SplitConfig:
    agent_share_percentage: Decimal = Decimal("50")
    misp_share_percentage: Decimal = Decimal("50")
    employee_share_percentage: Decimal = Decimal("60")
    reporting_employee_share_percentage: Decimal = Decimal("10")

    def default_share_for(self, source_type: str) -> Decimal:
        if source_type == SOURCE_AGENT:
            return self.agent_share_percentage
        if source_type == SOURCE_MISP:
            return self.misp_share_percentage
        if source_type == SOURCE_EMPLOYEE:
            return self.employee_share_percentage
        return _ZERO


@dataclass(frozen=True, slots=True)
class GridMatch:
    entry: GridEntry
    provider_matched: bool
    scope_matches: int

    @property
    def grid_id(self) -> int:
        return self.entry.grid_id

    @property
    def grid_table(self) -> str:
        return self.entry.grid_table


@dataclass(frozen=True, slots=True)
class RateBreakdown:
    base_rate: Decimal = _ZERO
    reward_rate: Decimal = _ZERO
    bonus_rate: Decimal = _ZERO
    total_rate: Decimal = _ZERO
    insurer_commission: Decimal = _ZERO


@dataclass(frozen=True, slots=True)
class PartyAllocations:
    agent_commission: Decimal = _ZERO
    misp_commission: Decimal = _ZERO
    employee_commission: Decimal = _ZERO
    reporting_employee_commission: Decimal = _ZERO
    broker_share: Decimal = _ZERO
    override_used: bool = False
    tier_name: str = ""

    @property
    def total(self) -> Decimal:
        return (
            self.agent_commission
            + self.misp_commission
            + self.employee_commission
            + self.reporting_employee_commission
            + self.broker_share
        )


@dataclass(frozen=True, slots=True)
class StatusStamp:
    status: str
    grid_id: int | None
    grid_table: str
    calc_date: datetime


@dataclass(frozen=True, slots=True)
class CommissionCalculationResult:
    policy_id: int
    policy_number: str
    customer_name: str
    product_type: str
    provider: str
    premium_amount: Decimal
    source_type: str
    source_id: int | None
    source_name: str
    rates: RateBreakdown
    allocations: PartyAllocations
    status: str
    grid_id: int | None
    grid_table: str
    calc_date: datetime
    error_detail: str = ""

    @property
    def insurer_commission(self) -> Decimal:
        return self.rates.insurer_commission

    @property
    def is_calculated(self) -> bool:
        return self.status == STATUS_CALCULATED

    @property
    def source_label(self) -> str:
        """Party label as the distribution report shows it."""

        if self.source_type == SOURCE_EMPLOYEE:
            return f"Internal ({self.source_name or self.source_id or 'Employee'})"
        if self.source_type == SOURCE_AGENT:
            return f"External ({self.source_name or self.source_id or 'Agent'})"
        if self.source_type == SOURCE_MISP:
            return f"External ({self.source_name or self.source_id or 'MISP'})"
        return "Direct"

    def record_values(self) -> dict[str, Any]:
        """Flat field values as stored on a commission record."""

        return {
            "policy_number": self.policy_number,
            "customer_name": self.customer_name,
            "product_type": self.product_type,
            "provider": self.provider,
            "source_type": self.source_type,
            "source_name": self.source_name,
            "premium_amount": self.premium_amount,
            "base_rate": self.rates.base_rate,
            "reward_rate": self.rates.reward_rate,
            "bonus_rate": self.rates.bonus_rate,
            "total_rate": self.rates.total_rate,
            "insurer_commission": self.rates.insurer_commission,
            "agent_commission": self.allocations.agent_commission,
            "misp_commission": self.allocations.misp_commission,
            "employee_commission": self.allocations.employee_commission,
            "reporting_employee_commission": self.allocations.reporting_employee_commission,
            "broker_share": self.allocations.broker_share,
            "grid_id": self.grid_id,
            "grid_table": self.grid_table,
            "tier_name": self.allocations.tier_name,
            "override_used": self.allocations.override_used,
            "status": self.status,
            "error_detail": self.error_detail,
            "calc_date": self.calc_date,
        }


@dataclass(frozen=True, slots=True)
class CommissionBatch:
    results: tuple[CommissionCalculationResult, ...]
    calc_date: datetime
    skipped_grid_rows: int = 0

    def _count(self, status: str) -> int:
        return sum(1 for result in self.results if result.status == status)

    @property
    def calculated_count(self) -> int:
        return self._count(STATUS_CALCULATED)

    @property
    def no_grid_match_count(self) -> int:
        return self._count(STATUS_NO_GRID_MATCH)

    @property
    def error_count(self) -> int:
        return self._count(STATUS_ERROR)


@dataclass(frozen=True, slots=True)
class SyncFailure:
    policy_id: int
    detail: str


@dataclass(frozen=True, slots=True)
class SyncReport:
    batch: CommissionBatch
    created: int = 0
    updated: int = 0
    failures: tuple[SyncFailure, ...] = field(default_factory=tuple)

    @property
    def synced(self) -> int:
        return self.created + self.updated

    @property
    def failed_policy_ids(self) -> list[int]:
        return [failure.policy_id for failure in self.failures]


def _to_decimal(value: Any, *, field: str) -> Decimal:
    try:
        if isinstance(value, Decimal):
            return value
        if value is None or value == "":
            raise InvalidInputError(f"Missing {field}.")
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise InvalidInputError(f"Invalid decimal for {field}.") from exc


def _optional_decimal(value: Any, *, field: str) -> Decimal | None:
    if value is None or value == "":
        return None
    return _to_decimal(value, field=field)


def _round_money(value: Decimal) -> Decimal:
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def _safe_str(value: Any) -> str:
    return str(value or "").strip()


def _as_date(value: Any) -> date:
    if value is None:
        return timezone.localdate()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError as exc:
            raise InvalidInputError(f"Invalid date value '{value}'.") from exc
    raise InvalidInputError("Invalid date value.")


def parse_grid_row(raw: Mapping[str, Any]) -> GridEntry:
    """Build a `GridEntry` from a raw grid row mapping.

    Reward and bonus rates default to 0; a missing or negative base rate (or a
    negative reward/bonus) makes the row malformed.
    """

    if not isinstance(raw, Mapping):
        raise InvalidInputError("Grid row must be a mapping.")

    try:
        grid_id = int(raw["grid_id"])
        rate_id = int(raw.get("rate_id") or raw.get("id") or 0)
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidInputError("Grid row is missing grid_id.") from exc

    product_type = _safe_str(raw.get("product_type")).lower()
    if not product_type:
        raise InvalidInputError(f"Grid {grid_id} has no product_type.")

    base_rate = _to_decimal(raw.get("base_rate"), field="base_rate")
    reward_rate = _optional_decimal(raw.get("reward_rate"), field="reward_rate") or _ZERO
    bonus_rate = _optional_decimal(raw.get("bonus_rate"), field="bonus_rate") or _ZERO
    for name, rate in (("base_rate", base_rate), ("reward_rate", reward_rate), ("bonus_rate", bonus_rate)):
        if rate < 0:
            raise InvalidInputError(f"Grid {grid_id} has negative {name}.")

    effective_from = raw.get("effective_from")
    effective_to = raw.get("effective_to")
    tier_id = raw.get("tier_id")

    return GridEntry(
        grid_id=grid_id,
        rate_id=rate_id,
        grid_table=_safe_str(raw.get("grid_table") or raw.get("grid_table_name")),
        product_type=product_type,
        base_rate=base_rate,
        reward_rate=reward_rate,
        bonus_rate=bonus_rate,
        provider=_safe_str(raw.get("provider")),
        tier_id=int(tier_id) if tier_id not in (None, "") else None,
        agent_type=_safe_str(raw.get("agent_type")).upper(),
        effective_from=_as_date(effective_from) if effective_from else None,
        effective_to=_as_date(effective_to) if effective_to else None,
        min_premium=_optional_decimal(raw.get("min_premium"), field="min_premium"),
        max_premium=_optional_decimal(raw.get("max_premium"), field="max_premium"),
        is_active=bool(raw.get("is_active", True)),
    )


def _is_well_formed(entry: GridEntry) -> bool:
    rates = (entry.base_rate, entry.reward_rate, entry.bonus_rate)
    return all(isinstance(rate, Decimal) and rate >= 0 for rate in rates)


def _in_window(entry: GridEntry, as_of: date) -> bool:
    if entry.effective_from is not None and entry.effective_from > as_of:
        return False
    if entry.effective_to is not None and entry.effective_to < as_of:
        return False
    return True


def _in_premium_band(entry: GridEntry, premium: Decimal) -> bool:
    if entry.min_premium is not None and premium < entry.min_premium:
        return False
    if entry.max_premium is not None and premium > entry.max_premium:
        return False
    return True


def _require_policy_fields(policy: PolicySnapshot) -> None:
    if not _safe_str(policy.product_type):
        raise InvalidInputError(f"Policy {policy.policy_id} has no product type.")
    if not _safe_str(policy.provider):
        raise InvalidInputError(f"Policy {policy.policy_id} has no provider.")


def resolve_grid(
    policy: PolicySnapshot,
    grids: Iterable[GridEntry],
    source: SourceSnapshot | None = None,
    as_of: Any = None,
) -> GridMatch | None:
    """Pick the most specific grid row applying to `policy`, or None.

    Candidates must match the product type, be active and effective on
    `as_of`, and not be scoped to another provider, tier, agent type or
    premium band. A provider-scoped grid beats a product-only grid; then the
    row matching more of tier/agent type wins; then lowest grid id and row id.
    """

    _require_policy_fields(policy)

    as_of_date = _as_date(as_of)
    product_type = _safe_str(policy.product_type).lower()
    provider = _safe_str(policy.provider).casefold()
    premium = _to_decimal(policy.premium_amount, field="premium_amount")
    source_tier_id = source.tier.tier_id if source is not None and source.tier is not None else None
    source_agent_type = _safe_str(source.agent_type).upper() if source is not None else ""

    best_key: tuple[int, int, int, int] | None = None
    best: GridMatch | None = None

    for entry in grids:
        if not _is_well_formed(entry):
            continue
        if not entry.is_active or entry.product_type != product_type:
            continue
        if not _in_window(entry, as_of_date) or not _in_premium_band(entry, premium):
            continue

        provider_matched = False
        if entry.provider:
            if entry.provider.casefold() != provider:
                continue
            provider_matched = True

        scope_matches = 0
        if entry.tier_id is not None:
            if entry.tier_id != source_tier_id:
                continue
            scope_matches += 1
        if entry.agent_type:
            if entry.agent_type != source_agent_type:
                continue
            scope_matches += 1

        # Lower is preferred.
        key = (0 if provider_matched else 1, -scope_matches, entry.grid_id, entry.rate_id)
        if best_key is None or key < best_key:
            best_key = key
            best = GridMatch(entry=entry, provider_matched=provider_matched, scope_matches=scope_matches)

    return best


def calculate_rates(policy: PolicySnapshot, match: GridMatch | None) -> RateBreakdown:
    premium = _to_decimal(policy.premium_amount, field="premium_amount")
    if premium < 0:
        raise InvalidInputError(f"Policy {policy.policy_id} has a negative premium.")

    if match is None:
        return RateBreakdown()

    entry = match.entry
    if not _is_well_formed(entry):
        raise InvalidInputError(f"Grid {entry.grid_id} row {entry.rate_id} has invalid rates.")

    total_rate = entry.base_rate + entry.reward_rate + entry.bonus_rate
    return RateBreakdown(
        base_rate=entry.base_rate,
        reward_rate=entry.reward_rate,
        bonus_rate=entry.bonus_rate,
        total_rate=total_rate,
        insurer_commission=_round_money(premium * total_rate / _HUNDRED),
    )


def split_commission(
    policy: PolicySnapshot,
    source: SourceSnapshot | None,
    insurer_commission: Any,
    config: SplitConfig,
) -> PartyAllocations:
    """Distribute `insurer_commission` between the sourcing party and the broker.

    The sourcing party gets its override (percentage of premium, capped at the
    insurer commission), else its tier share, else the tenant default share.
    An employee with a reporting employee gives up the configured slice of
    their commission. The broker keeps the remainder.
    """

    total = _round_money(_to_decimal(insurer_commission, field="insurer_commission"))
    source_type = _safe_str(policy.source_type).lower()

    if source_type not in SOURCE_TYPES:
        raise InvalidInputError(f"Unknown source type '{policy.source_type}'.")

    if source_type == SOURCE_DIRECT:
        return PartyAllocations(broker_share=total)

    if source is None:
        raise SourceLookupError(
            f"No {source_type} found with id {policy.source_id} for policy {policy.policy_id}."
        )

    override_used = False
    tier_name = source.tier.name if source.tier is not None else ""
    override = _optional_decimal(source.override_percentage, field="override_percentage")

    if override is not None:
        premium = _to_decimal(policy.premium_amount, field="premium_amount")
        share_amount = premium * override / _HUNDRED
        override_used = True
    elif source.tier is not None:
        share = _to_decimal(source.tier.share_percentage, field="share_percentage")
        share_amount = total * share / _HUNDRED
    else:
        share = _to_decimal(config.default_share_for(source_type), field="default_share_percentage")
        share_amount = total * share / _HUNDRED

    if share_amount < 0:
        raise InvalidInputError(f"Negative commission share for policy {policy.policy_id}.")
    # The sourcing party never receives more than the insurer pays.
    source_amount = min(_round_money(share_amount), total)

    agent_amount = misp_amount = employee_amount = reporting_amount = _ZERO
    if source_type == SOURCE_AGENT:
        agent_amount = source_amount
    elif source_type == SOURCE_MISP:
        misp_amount = source_amount
    else:
        employee_amount = source_amount
        if source.reporting_employee_id is not None:
            reporting_share = _to_decimal(
                config.reporting_employee_share_percentage,
                field="reporting_employee_share_percentage",
            )
            if reporting_share < 0:
                raise InvalidInputError("Negative reporting employee share.")
            reporting_amount = min(_round_money(employee_amount * reporting_share / _HUNDRED), employee_amount)
            employee_amount -= reporting_amount

    broker_share = total - (agent_amount + misp_amount + employee_amount + reporting_amount)
    return PartyAllocations(
        agent_commission=agent_amount,
        misp_commission=misp_amount,
        employee_commission=employee_amount,
        reporting_employee_commission=reporting_amount,
        broker_share=broker_share,
        override_used=override_used,
        tier_name=tier_name,
    )


def track_status(match: GridMatch | None, *, calc_date: datetime, failed: bool = False) -> StatusStamp:
    if failed:
        return StatusStamp(status=STATUS_ERROR, grid_id=None, grid_table="", calc_date=calc_date)
    if match is None:
        return StatusStamp(status=STATUS_NO_GRID_MATCH, grid_id=None, grid_table="", calc_date=calc_date)
    return StatusStamp(
        status=STATUS_CALCULATED,
        grid_id=match.grid_id,
        grid_table=match.grid_table,
        calc_date=calc_date,
    )


def _error_result(policy: PolicySnapshot, detail: str, *, calc_date: datetime) -> CommissionCalculationResult:
    stamp = track_status(None, calc_date=calc_date, failed=True)
    try:
        premium = _to_decimal(policy.premium_amount, field="premium_amount")
    except InvalidInputError:
        premium = _ZERO
    return CommissionCalculationResult(
        policy_id=policy.policy_id,
        policy_number=_safe_str(policy.policy_number),
        customer_name=_safe_str(policy.customer_name),
        product_type=_safe_str(policy.product_type),
        provider=_safe_str(policy.provider),
        premium_amount=premium,
        source_type=_safe_str(policy.source_type),
        source_id=policy.source_id,
        source_name="",
        rates=RateBreakdown(),
        allocations=PartyAllocations(),
        status=stamp.status,
        grid_id=stamp.grid_id,
        grid_table=stamp.grid_table,
        calc_date=stamp.calc_date,
        error_detail=detail,
    )


def _source_key_id(policy: PolicySnapshot) -> int:
    try:
        return int(str(policy.source_id).strip())
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"Invalid source id '{policy.source_id}' for policy {policy.policy_id}.") from exc


def evaluate_policy(
    policy: PolicySnapshot,
    grids: Iterable[GridEntry],
    sources: Mapping[tuple[str, int], SourceSnapshot],
    config: SplitConfig,
    *,
    calc_date: datetime,
    as_of: Any = None,
) -> CommissionCalculationResult:
    """Evaluate one policy; engine errors become an `error` result."""

    try:
        source_type = _safe_str(policy.source_type).lower()
        source = None
        if source_type != SOURCE_DIRECT and policy.source_id is not None:
            source = sources.get((source_type, _source_key_id(policy)))

        match = resolve_grid(policy, grids, source=source, as_of=as_of)
        rates = calculate_rates(policy, match)
        if match is None:
            if source_type not in SOURCE_TYPES:
                raise InvalidInputError(f"Unknown source type '{policy.source_type}'.")
            allocations = PartyAllocations()
        else:
            allocations = split_commission(policy, source, rates.insurer_commission, config)
    except (CommissionEngineError, ArithmeticError, TypeError, ValueError) as exc:
        logger.warning(
            "commission evaluation failed",
            extra={"policy_id": policy.policy_id, "error": str(exc)},
        )
        return _error_result(policy, str(exc), calc_date=calc_date)

    stamp = track_status(match, calc_date=calc_date)
    return CommissionCalculationResult(
        policy_id=policy.policy_id,
        policy_number=_safe_str(policy.policy_number),
        customer_name=_safe_str(policy.customer_name),
        product_type=_safe_str(policy.product_type).lower(),
        provider=_safe_str(policy.provider),
        premium_amount=_to_decimal(policy.premium_amount, field="premium_amount"),
        source_type=source_type,
        source_id=policy.source_id,
        source_name=source.name if source is not None else "",
        rates=rates,
        allocations=allocations,
        status=stamp.status,
        grid_id=stamp.grid_id,
        grid_table=stamp.grid_table,
        calc_date=stamp.calc_date,
    )


def grid_as_of(policy: PolicySnapshot, *, calc_date: datetime, date_basis: str = DATE_BASIS_RUN_DATE) -> date:
    if date_basis == DATE_BASIS_POLICY_START and policy.start_date is not None:
        return policy.start_date
    return timezone.localdate(calc_date) if timezone.is_aware(calc_date) else calc_date.date()


def calculate_batch(
    policies: Iterable[PolicySnapshot],
    grids: Iterable[GridEntry],
    sources: Mapping[tuple[str, int], SourceSnapshot],
    config: SplitConfig,
    *,
    calc_date: datetime | None = None,
    date_basis: str = DATE_BASIS_RUN_DATE,
    skipped_grid_rows: int = 0,
) -> CommissionBatch:
    """Evaluate every policy; one result per policy, in input order."""

    run_at = calc_date or timezone.now()
    grid_entries = tuple(grids)
    results = tuple(
        evaluate_policy(
            policy,
            grid_entries,
            sources,
            config,
            calc_date=run_at,
            as_of=grid_as_of(policy, calc_date=run_at, date_basis=date_basis),
        )
        for policy in policies
    )
    return CommissionBatch(results=results, calc_date=run_at, skipped_grid_rows=skipped_grid_rows)
