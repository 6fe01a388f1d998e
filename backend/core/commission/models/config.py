from __future__ import annotations

from decimal import Decimal

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from tenancy.models import BaseTenantModel


_PERCENT_VALIDATORS = [
    MinValueValidator(Decimal("0.00")),
    MaxValueValidator(Decimal("100.00")),
]


def _percent_field(help_text: str):
    return models.DecimalField(
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
        validators=_PERCENT_VALIDATORS,
        help_text=help_text,
    )


class DistributionSettings(BaseTenantModel):
    """Per-tenant distribution defaults; empty values use the COMMISSION_* settings."""

    agent_share_percentage = _percent_field("Agent share of insurer commission without tier/override.")
    misp_share_percentage = _percent_field("MISP share of insurer commission without tier/override.")
    employee_share_percentage = _percent_field("Employee share of insurer commission without tier/override.")
    reporting_employee_share_percentage = _percent_field(
        "Slice of the employee commission moved to the reporting employee."
    )

    class Meta:
        verbose_name = "Distribution Settings"
        verbose_name_plural = "Distribution Settings"
        constraints = [
            models.UniqueConstraint(
                fields=("company",),
                name="uq_comm_distribution_settings_company",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"Distribution settings ({self.company_id})"
