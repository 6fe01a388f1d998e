from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import DatabaseError, IntegrityError, transaction

from commission.models import CommissionRecord
from commission.selectors import (
    CommissionFilters,
    load_grid_entries,
    load_policy_snapshots,
    load_source_snapshots,
    load_split_config,
)
from commission.services.commission_engine import (
    CommissionBatch,
    CommissionCalculationResult,
    PersistenceError,
    SyncFailure,
    SyncReport,
    calculate_batch,
)
from ledger.models import LedgerEntry
from ledger.services import append_ledger_entry


logger = logging.getLogger(__name__)

_UPSERT_ATTEMPTS = 2


def calculate_policy_commissions(
    company,
    filters: CommissionFilters | None = None,
    *,
    calc_date: datetime | None = None,
) -> CommissionBatch:
    """Calculate commissions for the tenant's policies without persisting."""

    policies = load_policy_snapshots(company=company, filters=filters)
    grid_load = load_grid_entries(company=company)
    sources = load_source_snapshots(company=company, policies=policies)
    config = load_split_config(company=company)

    batch = calculate_batch(
        policies,
        grid_load.entries,
        sources,
        config,
        calc_date=calc_date,
        date_basis=getattr(settings, "COMMISSION_GRID_DATE_BASIS", "run_date"),
        skipped_grid_rows=grid_load.skipped,
    )
    logger.info(
        "commission batch calculated",
        extra={
            "company_id": company.id,
            "policies": len(batch.results),
            "calculated": batch.calculated_count,
            "no_grid_match": batch.no_grid_match_count,
            "errors": batch.error_count,
            "skipped_grid_rows": batch.skipped_grid_rows,
        },
    )
    return batch


def _upsert_record(company, result: CommissionCalculationResult) -> bool:
    """Write one result; returns True when a new record was created."""

    values = result.record_values()
    for attempt in range(_UPSERT_ATTEMPTS):
        try:
            with transaction.atomic():
                record = (
                    CommissionRecord.all_objects.select_for_update()
                    .filter(company=company, policy_id=result.policy_id)
                    .first()
                )
                if record is None:
                    CommissionRecord.all_objects.create(company=company, policy_id=result.policy_id, **values)
                    return True
                for name, value in values.items():
                    setattr(record, name, value)
                record.save()
                return False
        except IntegrityError as exc:
            # A concurrent sync inserted the same policy first; update it instead.
            if attempt + 1 < _UPSERT_ATTEMPTS:
                continue
            raise PersistenceError(str(exc)) from exc
        except (DatabaseError, ValidationError) as exc:
            raise PersistenceError(str(exc)) from exc

    raise PersistenceError("Commission record upsert retries exhausted.")


def sync_commission_results(
    company,
    batch: CommissionBatch,
    results: Iterable[CommissionCalculationResult] | None = None,
) -> SyncReport:
    """Upsert results into commission records, one record per policy.

    A failed write is reported per policy and does not stop the others, so the
    caller can retry just the failed subset.
    """

    created = updated = 0
    failures: list[SyncFailure] = []

    for result in batch.results if results is None else results:
        try:
            if _upsert_record(company, result):
                created += 1
            else:
                updated += 1
        except PersistenceError as exc:
            logger.warning(
                "commission record sync failed",
                extra={"company_id": company.id, "policy_id": result.policy_id, "error": str(exc)},
            )
            failures.append(SyncFailure(policy_id=result.policy_id, detail=str(exc)))

    return SyncReport(batch=batch, created=created, updated=updated, failures=tuple(failures))


def sync_policy_commissions(
    company,
    *,
    actor=None,
    filters: CommissionFilters | None = None,
    request=None,
    calc_date: datetime | None = None,
) -> SyncReport:
    """Calculate, persist and audit one sync run."""

    filters = filters or CommissionFilters()
    batch = calculate_policy_commissions(company, filters, calc_date=calc_date)
    report = sync_commission_results(company, batch)

    append_ledger_entry(
        company=company,
        actor=actor,
        action=LedgerEntry.ACTION_SYSTEM,
        event_type="commission.sync",
        resource_label=CommissionRecord._meta.label,
        request=request,
        data_after={
            "policies": len(batch.results),
            "calculated": batch.calculated_count,
            "no_grid_match": batch.no_grid_match_count,
            "errors": batch.error_count,
            "created": report.created,
            "updated": report.updated,
            "failed_policy_ids": report.failed_policy_ids,
        },
        metadata={"filters": filters.as_dict(), "calc_date": batch.calc_date.isoformat()},
    )

    logger.info(
        "commission sync finished",
        extra={
            "company_id": company.id,
            "records_created": report.created,
            "records_updated": report.updated,
            "failure_count": len(report.failures),
        },
    )
    return report
