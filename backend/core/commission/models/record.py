from __future__ import annotations

from decimal import Decimal

from django.db import models

from tenancy.models import BaseTenantModel


def _money_field():
    return models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))


def _rate_field():
    return models.DecimalField(max_digits=7, decimal_places=4, default=Decimal("0"))


class CommissionRecord(BaseTenantModel):
    """Persisted commission distribution for one policy (upserted by sync)."""

    class Status(models.TextChoices):
        CALCULATED = "calculated", "Calculated"
        NO_GRID_MATCH = "no_grid_match", "No grid match"
        ERROR = "error", "Error"

    policy = models.ForeignKey(
        "insurance_core.Policy",
        on_delete=models.CASCADE,
        related_name="commission_records",
    )
    policy_number = models.CharField(max_length=80)
    customer_name = models.CharField(max_length=255, blank=True)
    product_type = models.CharField(max_length=40, blank=True)
    provider = models.CharField(max_length=120, blank=True)
    source_type = models.CharField(max_length=20, blank=True)
    source_name = models.CharField(max_length=255, blank=True)

    premium_amount = _money_field()
    base_rate = _rate_field()
    reward_rate = _rate_field()
    bonus_rate = _rate_field()
    total_rate = _rate_field()

    insurer_commission = _money_field()
    agent_commission = _money_field()
    misp_commission = _money_field()
    employee_commission = _money_field()
    reporting_employee_commission = _money_field()
    broker_share = _money_field()

    grid_id = models.PositiveBigIntegerField(null=True, blank=True)
    grid_table = models.CharField(max_length=80, blank=True)
    tier_name = models.CharField(max_length=80, blank=True)
    override_used = models.BooleanField(default=False)

    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.CALCULATED,
        db_index=True,
    )
    error_detail = models.TextField(blank=True)
    calc_date = models.DateTimeField()

    class Meta:
        ordering = ("-calc_date", "-id")
        verbose_name = "Commission Record"
        verbose_name_plural = "Commission Records"
        constraints = [
            models.UniqueConstraint(
                fields=("company", "policy"),
                name="uq_comm_record_company_policy",
            ),
        ]
        indexes = [
            models.Index(
                fields=("company", "status"),
                name="idx_comm_record_cmp_status",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.policy_number} ({self.status})"
