from __future__ import annotations

from decimal import Decimal

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from tenancy.models import BaseTenantModel


_PERCENT_VALIDATORS = [
    MinValueValidator(Decimal("0.00")),
    MaxValueValidator(Decimal("100.00")),
]


class CommissionTier(BaseTenantModel):
    """Ranked classification of a selling source (e.g. Gold / Silver).

    `share_percentage` is the share of the insurer commission paid to a source
    sitting in this tier when it has no override of its own.
    """

    name = models.CharField(max_length=80)
    rank = models.PositiveIntegerField(
        default=100,
        help_text="Lower values are higher tiers.",
    )
    share_percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        validators=_PERCENT_VALIDATORS,
    )

    class Meta:
        ordering = ("rank", "name", "id")
        verbose_name = "Commission Tier"
        verbose_name_plural = "Commission Tiers"
        constraints = [
            models.UniqueConstraint(
                fields=("company", "name"),
                name="uq_comm_tier_company_name",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return self.name
