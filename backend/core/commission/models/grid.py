from __future__ import annotations

from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from tenancy.models import BaseTenantModel


_MIN_ZERO = MinValueValidator(Decimal("0.00"))


class CommissionGrid(BaseTenantModel):
    """Insurer payout rate table for one product type (optionally one provider)."""

    name = models.CharField(max_length=255)
    grid_table = models.CharField(
        max_length=80,
        help_text="Source table label carried into results, e.g. motor_payout_grid.",
    )
    product_type = models.CharField(max_length=40, db_index=True)
    provider = models.CharField(
        max_length=120,
        blank=True,
        help_text="Empty means the grid applies to any provider.",
    )
    effective_from = models.DateField(default=timezone.localdate)
    effective_to = models.DateField(null=True, blank=True)
    is_active = models.BooleanField(default=True, db_index=True)

    class Meta:
        ordering = ("product_type", "provider", "id")
        verbose_name = "Commission Grid"
        verbose_name_plural = "Commission Grids"
        constraints = [
            models.CheckConstraint(
                condition=Q(effective_to__isnull=True) | Q(effective_to__gte=F("effective_from")),
                name="ck_comm_grid_eff_range",
            ),
        ]
        indexes = [
            models.Index(
                fields=("company", "product_type", "is_active"),
                name="idx_comm_grid_cmp_prod",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.grid_table}:{self.name}"

    def save(self, *args, **kwargs):
        self.product_type = (self.product_type or "").strip().lower()
        self.provider = (self.provider or "").strip()
        return super().save(*args, **kwargs)


class GridRate(BaseTenantModel):
    """One rate row of a grid; tier / agent type / premium band narrow its scope."""

    grid = models.ForeignKey(
        CommissionGrid,
        on_delete=models.CASCADE,
        related_name="rates",
    )
    tier = models.ForeignKey(
        "commission.CommissionTier",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="grid_rates",
    )
    agent_type = models.CharField(max_length=20, blank=True)
    base_rate = models.DecimalField(max_digits=7, decimal_places=4, validators=[_MIN_ZERO])
    reward_rate = models.DecimalField(
        max_digits=7,
        decimal_places=4,
        default=Decimal("0"),
        validators=[_MIN_ZERO],
    )
    bonus_rate = models.DecimalField(
        max_digits=7,
        decimal_places=4,
        default=Decimal("0"),
        validators=[_MIN_ZERO],
    )
    min_premium = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    max_premium = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)

    class Meta:
        ordering = ("grid_id", "id")
        verbose_name = "Grid Rate"
        verbose_name_plural = "Grid Rates"
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(min_premium__isnull=True)
                    | Q(max_premium__isnull=True)
                    | Q(max_premium__gte=F("min_premium"))
                ),
                name="ck_grid_rate_premium_band",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.grid_id}:{self.base_rate}+{self.reward_rate}+{self.bonus_rate}"

    def clean(self):
        super().clean()
        if self.grid_id and self.company_id and self.grid.company_id != self.company_id:
            raise ValidationError({"grid": "Grid must belong to the same tenant."})
        if self.tier_id and self.company_id and self.tier.company_id != self.company_id:
            raise ValidationError({"tier": "Tier must belong to the same tenant."})

    def save(self, *args, **kwargs):
        self.agent_type = (self.agent_type or "").strip().upper()
        return super().save(*args, **kwargs)
