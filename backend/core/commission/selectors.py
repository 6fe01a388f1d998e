from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable

from django.conf import settings
from django.db.models import Q

from commission.models import Agent, CommissionGrid, DistributionSettings, Employee, GridRate, Misp
from commission.services.commission_engine import (
    SOURCE_AGENT,
    SOURCE_EMPLOYEE,
    SOURCE_MISP,
    GridEntry,
    InvalidInputError,
    PolicySnapshot,
    SourceSnapshot,
    SplitConfig,
    TierShare,
    parse_grid_row,
)
from insurance_core.models import Policy


logger = logging.getLogger(__name__)

_SOURCE_MODELS = {
    SOURCE_AGENT: Agent,
    SOURCE_MISP: Misp,
    SOURCE_EMPLOYEE: Employee,
}


@dataclass(frozen=True, slots=True)
class CommissionFilters:
    product_type: str = ""
    provider: str = ""
    source_type: str = ""
    start_date_from: date | None = None
    start_date_to: date | None = None
    search: str = ""
    policy_ids: tuple[int, ...] = ()

    def as_dict(self) -> dict:
        return {
            "product_type": self.product_type,
            "provider": self.provider,
            "source_type": self.source_type,
            "start_date_from": self.start_date_from.isoformat() if self.start_date_from else None,
            "start_date_to": self.start_date_to.isoformat() if self.start_date_to else None,
            "search": self.search,
            "policy_ids": list(self.policy_ids),
        }


@dataclass(frozen=True, slots=True)
class GridLoad:
    entries: tuple[GridEntry, ...]
    skipped: int = 0


def list_policies(*, company, filters: CommissionFilters | None = None):
    filters = filters or CommissionFilters()
    qs = Policy.all_objects.filter(company=company)
    if filters.product_type:
        qs = qs.filter(product_type=filters.product_type.strip().lower())
    if filters.provider:
        qs = qs.filter(provider__iexact=filters.provider.strip())
    if filters.source_type:
        qs = qs.filter(source_type=filters.source_type.strip().lower())
    if filters.start_date_from:
        qs = qs.filter(start_date__gte=filters.start_date_from)
    if filters.start_date_to:
        qs = qs.filter(start_date__lte=filters.start_date_to)
    if filters.policy_ids:
        qs = qs.filter(id__in=filters.policy_ids)
    search = (filters.search or "").strip()
    if search:
        qs = qs.filter(Q(policy_number__icontains=search) | Q(customer_name__icontains=search))
    return qs.order_by("id")


def policy_snapshot(policy: Policy) -> PolicySnapshot:
    return PolicySnapshot(
        policy_id=policy.id,
        policy_number=policy.policy_number,
        product_type=policy.product_type,
        provider=policy.provider,
        premium_amount=policy.premium_amount,
        source_type=policy.source_type,
        source_id=policy.source_id,
        customer_ref=policy.customer_ref,
        customer_name=policy.customer_name,
        start_date=policy.start_date,
        end_date=policy.end_date,
    )


def load_policy_snapshots(*, company, filters: CommissionFilters | None = None) -> list[PolicySnapshot]:
    return [policy_snapshot(policy) for policy in list_policies(company=company, filters=filters)]


def load_grid_entries(*, company) -> GridLoad:
    """Load active grid rows as engine entries; malformed rows are skipped."""

    rows = (
        GridRate.all_objects.filter(company=company, grid__is_active=True)
        .select_related("grid")
        .order_by("grid_id", "id")
    )

    entries: list[GridEntry] = []
    skipped = 0
    for row in rows:
        grid: CommissionGrid = row.grid
        raw = {
            "grid_id": grid.id,
            "rate_id": row.id,
            "grid_table": grid.grid_table,
            "product_type": grid.product_type,
            "provider": grid.provider,
            "tier_id": row.tier_id,
            "agent_type": row.agent_type,
            "base_rate": row.base_rate,
            "reward_rate": row.reward_rate,
            "bonus_rate": row.bonus_rate,
            "effective_from": grid.effective_from,
            "effective_to": grid.effective_to,
            "min_premium": row.min_premium,
            "max_premium": row.max_premium,
            "is_active": grid.is_active,
        }
        try:
            entries.append(parse_grid_row(raw))
        except InvalidInputError as exc:
            skipped += 1
            logger.warning(
                "skipping malformed grid row",
                extra={"company_id": company.id, "grid_id": grid.id, "rate_id": row.id, "error": str(exc)},
            )

    return GridLoad(entries=tuple(entries), skipped=skipped)


def _tier_share(tier) -> TierShare | None:
    if tier is None:
        return None
    return TierShare(tier_id=tier.id, name=tier.name, share_percentage=tier.share_percentage)


def load_source_snapshots(
    *, company, policies: Iterable[PolicySnapshot]
) -> dict[tuple[str, int], SourceSnapshot]:
    """Source entities referenced by `policies`, keyed by (source_type, id)."""

    wanted: dict[str, set[int]] = defaultdict(set)
    for policy in policies:
        if policy.source_type in _SOURCE_MODELS and policy.source_id is not None:
            wanted[policy.source_type].add(int(policy.source_id))

    sources: dict[tuple[str, int], SourceSnapshot] = {}
    for source_type, ids in wanted.items():
        model = _SOURCE_MODELS[source_type]
        for entity in model.all_objects.filter(company=company, id__in=ids).select_related("tier"):
            sources[(source_type, entity.id)] = SourceSnapshot(
                source_type=source_type,
                source_id=entity.id,
                name=entity.name,
                tier=_tier_share(entity.tier),
                agent_type=str(getattr(entity, "agent_type", "") or ""),
                override_percentage=entity.override_percentage,
                reporting_employee_id=getattr(entity, "reporting_employee_id", None),
            )
    return sources


def _setting_pct(name: str) -> Decimal:
    return Decimal(str(getattr(settings, name)))


def load_split_config(*, company) -> SplitConfig:
    row = DistributionSettings.all_objects.filter(company=company).first()

    def pick(field_name: str, setting_name: str) -> Decimal:
        value = getattr(row, field_name, None) if row is not None else None
        return value if value is not None else _setting_pct(setting_name)

    return SplitConfig(
        agent_share_percentage=pick("agent_share_percentage", "COMMISSION_DEFAULT_AGENT_SHARE_PCT"),
        misp_share_percentage=pick("misp_share_percentage", "COMMISSION_DEFAULT_MISP_SHARE_PCT"),
        employee_share_percentage=pick("employee_share_percentage", "COMMISSION_DEFAULT_EMPLOYEE_SHARE_PCT"),
        reporting_employee_share_percentage=pick(
            "reporting_employee_share_percentage",
            "COMMISSION_REPORTING_EMPLOYEE_SHARE_PCT",
        ),
    )
