from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass

from django.db import IntegrityError, transaction
from django.utils import timezone

from ledger.models import LedgerEntry


logger = logging.getLogger(__name__)

_MAX_APPEND_ATTEMPTS = 5


@dataclass(frozen=True, slots=True)
class ChainVerification:
    chain_id: str
    checked: int
    valid: bool
    broken_entry_id: int | None = None


def _canonical_json(value) -> str:
    return json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=True,
        default=str,
    )


def _build_entry_hash(payload: dict, prev_hash: str) -> str:
    material = f"{prev_hash}{_canonical_json(payload)}".encode("utf-8")
    return hashlib.sha256(material).hexdigest()


def _chain_id(company) -> str:
    return f"tenant:{company.id}"


def _entry_payload(entry: LedgerEntry) -> dict:
    return {
        "chain_id": entry.chain_id,
        "company_id": entry.company_id,
        "actor_username": entry.actor_username,
        "action": entry.action,
        "event_type": entry.event_type,
        "resource_label": entry.resource_label,
        "resource_pk": entry.resource_pk,
        "occurred_at": entry.occurred_at.isoformat(),
        "correlation_id": entry.correlation_id,
        "request_method": entry.request_method,
        "request_path": entry.request_path,
        "data_before": entry.data_before,
        "data_after": entry.data_after,
        "metadata": entry.metadata,
    }


def append_ledger_entry(
    *,
    company,
    actor,
    action: str,
    resource_label: str,
    resource_pk: str = "",
    request=None,
    event_type: str = "",
    data_before: dict | None = None,
    data_after: dict | None = None,
    metadata: dict | None = None,
) -> LedgerEntry:
    """Append an immutable entry to the tenant's hash chain.

    Concurrent writers race on the (chain_id, prev_hash) constraint; the loser
    re-reads the chain head and retries.
    """

    if getattr(company, "id", None) is None:
        raise ValueError("company is required for ledger entries.")

    actor_obj = actor if getattr(actor, "is_authenticated", False) else None
    chain_id = _chain_id(company)
    # Round-trip JSON so the hash covers exactly what the JSONField stores.
    data_before = json.loads(_canonical_json(data_before)) if data_before is not None else None
    data_after = json.loads(_canonical_json(data_after)) if data_after is not None else None
    metadata_payload = json.loads(_canonical_json(metadata)) if isinstance(metadata, dict) else {}

    for _attempt in range(_MAX_APPEND_ATTEMPTS):
        prev_hash = (
            LedgerEntry.all_objects.filter(chain_id=chain_id)
            .order_by("-id")
            .values_list("entry_hash", flat=True)
            .first()
            or ""
        )

        entry = LedgerEntry(
            company=company,
            actor=actor_obj,
            actor_username=(getattr(actor_obj, "username", "") or "").strip(),
            action=action,
            event_type=event_type or f"{resource_label}.{action}",
            resource_label=resource_label,
            resource_pk=str(resource_pk or ""),
            occurred_at=timezone.now(),
            correlation_id=str(getattr(request, "correlation_id", "") or ""),
            request_method=(getattr(request, "method", "") or "").upper(),
            request_path=getattr(request, "path", "") or "",
            chain_id=chain_id,
            prev_hash=prev_hash,
            data_before=data_before,
            data_after=data_after,
            metadata=metadata_payload,
        )
        entry.entry_hash = _build_entry_hash(_entry_payload(entry), prev_hash)

        try:
            with transaction.atomic():
                entry.save(force_insert=True)
            return entry
        except IntegrityError as exc:
            if "uq_ledger_prev_hash_per_chain" in str(exc) or "prev_hash" in str(exc):
                logger.info("ledger chain head moved; retrying", extra={"chain_id": chain_id})
                continue
            raise

    raise RuntimeError("Failed to append ledger entry (concurrency retries exhausted).")


def verify_chain(*, company) -> ChainVerification:
    """Recompute every hash of the tenant chain in insertion order."""

    chain_id = _chain_id(company)
    prev_hash = ""
    checked = 0
    for entry in LedgerEntry.all_objects.filter(chain_id=chain_id).order_by("id").iterator():
        checked += 1
        expected = _build_entry_hash(_entry_payload(entry), prev_hash)
        if entry.prev_hash != prev_hash or entry.entry_hash != expected:
            logger.warning(
                "ledger chain verification failed",
                extra={"chain_id": chain_id, "entry_id": entry.id},
            )
            return ChainVerification(chain_id=chain_id, checked=checked, valid=False, broken_entry_id=entry.id)
        prev_hash = entry.entry_hash

    return ChainVerification(chain_id=chain_id, checked=checked, valid=True)
