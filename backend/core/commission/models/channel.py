from __future__ import annotations

from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from tenancy.models import BaseTenantModel


_PERCENT_VALIDATORS = [
    MinValueValidator(Decimal("0.00")),
    MaxValueValidator(Decimal("100.00")),
]


class AgentType(models.TextChoices):
    POSP = "POSP", "POSP"
    INDIVIDUAL = "INDIVIDUAL", "Individual"
    CORPORATE = "CORPORATE", "Corporate"
    MISP = "MISP", "MISP"


class SourceEntity(BaseTenantModel):
    """Common fields of the parties that can source a policy sale."""

    name = models.CharField(max_length=255)
    code = models.CharField(max_length=40, blank=True)
    tier = models.ForeignKey(
        "commission.CommissionTier",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    override_percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
        validators=_PERCENT_VALIDATORS,
        help_text="Percentage of premium paid instead of the tier share.",
    )
    is_active = models.BooleanField(default=True)

    class Meta:
        abstract = True

    def __str__(self) -> str:  # pragma: no cover
        return self.name


class Agent(SourceEntity):
    agent_type = models.CharField(
        max_length=20,
        choices=[c for c in AgentType.choices if c[0] != AgentType.MISP],
        default=AgentType.POSP,
    )

    class Meta:
        ordering = ("name", "id")
        verbose_name = "Agent"
        verbose_name_plural = "Agents"


class Misp(SourceEntity):
    """Motor Insurance Service Provider (dealer channel partner)."""

    dealer_location = models.CharField(max_length=120, blank=True)

    class Meta:
        ordering = ("name", "id")
        verbose_name = "MISP"
        verbose_name_plural = "MISPs"

    @property
    def agent_type(self) -> str:
        return AgentType.MISP


class Employee(SourceEntity):
    reporting_employee = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="reportees",
    )

    class Meta:
        ordering = ("name", "id")
        verbose_name = "Employee"
        verbose_name_plural = "Employees"

    def clean(self):
        super().clean()
        if self.pk and self.reporting_employee_id == self.pk:
            raise ValidationError({"reporting_employee": "An employee cannot report to themselves."})
        if (
            self.reporting_employee_id
            and self.reporting_employee.company_id != self.company_id
        ):
            raise ValidationError({"reporting_employee": "Reporting employee must belong to the same tenant."})
