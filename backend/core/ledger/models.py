from __future__ import annotations

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.utils import timezone

from tenancy.context import get_current_company
from tenancy.managers import TenantManager


class LedgerEntry(models.Model):
    """Append-only audit entry in a per-tenant hash chain.

    Each entry hashes its payload together with the previous entry hash of the
    same chain, so editing or removing a row breaks verification of every
    later row. Rows are written only through `ledger.services.append_ledger_entry`.
    """

    ACTION_CREATE = "CREATE"
    ACTION_UPDATE = "UPDATE"
    ACTION_DELETE = "DELETE"
    ACTION_SYSTEM = "SYSTEM"
    ACTION_CHOICES = [
        (ACTION_CREATE, "Create"),
        (ACTION_UPDATE, "Update"),
        (ACTION_DELETE, "Delete"),
        (ACTION_SYSTEM, "System"),
    ]

    company = models.ForeignKey(
        "customers.Company",
        on_delete=models.PROTECT,
        related_name="ledger_entries",
    )
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="ledger_entries",
        null=True,
        blank=True,
    )
    actor_username = models.CharField(max_length=150, blank=True)

    action = models.CharField(max_length=20, choices=ACTION_CHOICES, default=ACTION_SYSTEM)
    event_type = models.CharField(max_length=120, blank=True)
    resource_label = models.CharField(max_length=200)
    resource_pk = models.CharField(max_length=64, blank=True)

    occurred_at = models.DateTimeField(default=timezone.now)
    correlation_id = models.CharField(max_length=64, blank=True)
    request_method = models.CharField(max_length=12, blank=True)
    request_path = models.CharField(max_length=255, blank=True)

    chain_id = models.CharField(max_length=80, db_index=True)
    prev_hash = models.CharField(max_length=64, blank=True, default="")
    entry_hash = models.CharField(max_length=64, unique=True)

    data_before = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)
    data_after = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)
    metadata = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)

    objects = TenantManager()
    all_objects = models.Manager()

    class Meta:
        ordering = ("-occurred_at", "-id")
        constraints = [
            models.UniqueConstraint(
                fields=("chain_id", "prev_hash"),
                name="uq_ledger_prev_hash_per_chain",
            ),
        ]
        indexes = [
            models.Index(
                fields=("chain_id", "occurred_at"),
                name="idx_ledger_chain_occurred",
            ),
        ]
        verbose_name = "Ledger Entry"
        verbose_name_plural = "Ledger Entries"

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.occurred_at:%Y-%m-%d %H:%M:%S} [{self.chain_id}] {self.event_type}"

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ValidationError("Ledger entries are immutable; updates are not allowed.")

        current_company = get_current_company()
        if self.company_id is None and current_company is not None:
            self.company = current_company
        if self.company_id is None:
            raise ValidationError("company is required for ledger entries.")
        if current_company is not None and self.company_id != current_company.id:
            raise ValidationError(
                "Cross-tenant ledger write blocked: entry company does not match request tenant."
            )

        if not self.chain_id:
            self.chain_id = f"tenant:{self.company_id}"
        if not self.entry_hash:
            raise ValidationError("entry_hash is required. Use ledger.services.append_ledger_entry().")

        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("Ledger entries are immutable; deletes are not allowed.")
