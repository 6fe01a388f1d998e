from __future__ import annotations

from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models

from tenancy.models import BaseTenantModel


_MIN_ZERO = MinValueValidator(Decimal("0.00"))


class ProductType(models.TextChoices):
    MOTOR = "motor", "Motor"
    HEALTH = "health", "Health"
    LIFE = "life", "Life"
    TRAVEL = "travel", "Travel"
    COMMERCIAL = "commercial", "Commercial"


class SourceType(models.TextChoices):
    EMPLOYEE = "employee", "Employee"
    AGENT = "agent", "Agent"
    MISP = "misp", "MISP"
    DIRECT = "direct", "Direct"


class Policy(BaseTenantModel):
    """A sold insurance contract (tenant scoped)."""

    class Status(models.TextChoices):
        DRAFT = "DRAFT", "Draft"
        ACTIVE = "ACTIVE", "Active"
        EXPIRED = "EXPIRED", "Expired"
        CANCELLED = "CANCELLED", "Cancelled"

    policy_number = models.CharField(max_length=80)
    product_type = models.CharField(max_length=40, choices=ProductType.choices, db_index=True)
    provider = models.CharField(
        max_length=120,
        help_text="Insurer name as printed on the policy.",
    )
    plan_name = models.CharField(max_length=120, blank=True)

    customer_ref = models.CharField(
        max_length=64,
        blank=True,
        help_text="Reference to the customer record in the CRM bounded context.",
    )
    customer_name = models.CharField(
        max_length=255,
        blank=True,
        help_text="Snapshot label to avoid cross-context joins in listings.",
    )

    premium_amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[_MIN_ZERO],
    )
    currency = models.CharField(max_length=3, default="INR")

    source_type = models.CharField(
        max_length=20,
        choices=SourceType.choices,
        default=SourceType.DIRECT,
        db_index=True,
    )
    source_id = models.PositiveBigIntegerField(
        null=True,
        blank=True,
        help_text="Id of the selling agent/MISP/employee (by source_type).",
    )

    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.ACTIVE,
        db_index=True,
    )
    start_date = models.DateField()
    end_date = models.DateField()

    class Meta:
        ordering = ("-start_date", "-id")
        verbose_name = "Policy"
        verbose_name_plural = "Policies"
        constraints = [
            models.UniqueConstraint(
                fields=("company", "policy_number"),
                name="uq_policy_number_per_company",
            ),
        ]
        indexes = [
            models.Index(
                fields=("company", "status", "start_date"),
                name="idx_pol_cmp_stat_start",
            ),
            models.Index(
                fields=("company", "product_type", "provider"),
                name="idx_pol_cmp_prod_prov",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.policy_number} ({self.status})"

    def clean(self):
        super().clean()

        errors: dict[str, str] = {}

        if self.start_date and self.end_date and self.start_date > self.end_date:
            errors["end_date"] = "end_date must be greater than or equal to start_date."

        if self.source_type == SourceType.DIRECT:
            if self.source_id is not None:
                errors["source_id"] = "Direct policies must not reference a source."
        elif self.source_id is None:
            errors["source_id"] = f"source_id is required for {self.source_type} policies."

        if errors:
            raise ValidationError(errors)

    def save(self, *args, **kwargs):
        self.provider = (self.provider or "").strip()
        self.product_type = (self.product_type or "").strip().lower()
        self.currency = (self.currency or "INR").strip().upper()
        return super().save(*args, **kwargs)
