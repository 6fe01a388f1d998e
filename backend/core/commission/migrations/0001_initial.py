from decimal import Decimal

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


_PERCENT_VALIDATORS = [
    django.core.validators.MinValueValidator(Decimal("0.00")),
    django.core.validators.MaxValueValidator(Decimal("100.00")),
]


def _company_fk():
    return models.ForeignKey(
        on_delete=django.db.models.deletion.PROTECT,
        related_name="%(app_label)s_%(class)s_set",
        to="customers.company",
    )


def _timestamps():
    return [
        ("created_at", models.DateTimeField(auto_now_add=True)),
        ("updated_at", models.DateTimeField(auto_now=True)),
    ]


def _source_fields():
    return [
        ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
        *_timestamps(),
        ("name", models.CharField(max_length=255)),
        ("code", models.CharField(blank=True, max_length=40)),
        (
            "override_percentage",
            models.DecimalField(
                blank=True,
                decimal_places=2,
                help_text="Percentage of premium paid instead of the tier share.",
                max_digits=5,
                null=True,
                validators=_PERCENT_VALIDATORS,
            ),
        ),
        ("is_active", models.BooleanField(default=True)),
        ("company", _company_fk()),
        (
            "tier",
            models.ForeignKey(
                blank=True,
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name="+",
                to="commission.commissiontier",
            ),
        ),
    ]


def _money_field():
    return models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=14)


def _rate_field():
    return models.DecimalField(decimal_places=4, default=Decimal("0"), max_digits=7)


def _percent_setting(help_text):
    return models.DecimalField(
        blank=True,
        decimal_places=2,
        help_text=help_text,
        max_digits=5,
        null=True,
        validators=_PERCENT_VALIDATORS,
    )


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("customers", "0001_initial"),
        ("insurance_core", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="CommissionTier",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                *_timestamps(),
                ("name", models.CharField(max_length=80)),
                ("rank", models.PositiveIntegerField(default=100, help_text="Lower values are higher tiers.")),
                (
                    "share_percentage",
                    models.DecimalField(decimal_places=2, max_digits=5, validators=_PERCENT_VALIDATORS),
                ),
                ("company", _company_fk()),
            ],
            options={
                "verbose_name": "Commission Tier",
                "verbose_name_plural": "Commission Tiers",
                "ordering": ("rank", "name", "id"),
                "constraints": [
                    models.UniqueConstraint(fields=("company", "name"), name="uq_comm_tier_company_name"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Agent",
            fields=[
                *_source_fields(),
                (
                    "agent_type",
                    models.CharField(
                        choices=[("POSP", "POSP"), ("INDIVIDUAL", "Individual"), ("CORPORATE", "Corporate")],
                        default="POSP",
                        max_length=20,
                    ),
                ),
            ],
            options={
                "verbose_name": "Agent",
                "verbose_name_plural": "Agents",
                "ordering": ("name", "id"),
            },
        ),
        migrations.CreateModel(
            name="Misp",
            fields=[
                *_source_fields(),
                ("dealer_location", models.CharField(blank=True, max_length=120)),
            ],
            options={
                "verbose_name": "MISP",
                "verbose_name_plural": "MISPs",
                "ordering": ("name", "id"),
            },
        ),
        migrations.CreateModel(
            name="Employee",
            fields=[
                *_source_fields(),
                (
                    "reporting_employee",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="reportees",
                        to="commission.employee",
                    ),
                ),
            ],
            options={
                "verbose_name": "Employee",
                "verbose_name_plural": "Employees",
                "ordering": ("name", "id"),
            },
        ),
        migrations.CreateModel(
            name="CommissionGrid",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                *_timestamps(),
                ("name", models.CharField(max_length=255)),
                (
                    "grid_table",
                    models.CharField(
                        help_text="Source table label carried into results, e.g. motor_payout_grid.",
                        max_length=80,
                    ),
                ),
                ("product_type", models.CharField(db_index=True, max_length=40)),
                (
                    "provider",
                    models.CharField(
                        blank=True,
                        help_text="Empty means the grid applies to any provider.",
                        max_length=120,
                    ),
                ),
                ("effective_from", models.DateField(default=django.utils.timezone.localdate)),
                ("effective_to", models.DateField(blank=True, null=True)),
                ("is_active", models.BooleanField(db_index=True, default=True)),
                ("company", _company_fk()),
            ],
            options={
                "verbose_name": "Commission Grid",
                "verbose_name_plural": "Commission Grids",
                "ordering": ("product_type", "provider", "id"),
                "indexes": [
                    models.Index(fields=["company", "product_type", "is_active"], name="idx_comm_grid_cmp_prod"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("effective_to__isnull", True), ("effective_to__gte", models.F("effective_from")), _connector="OR"),
                        name="ck_comm_grid_eff_range",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="GridRate",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                *_timestamps(),
                ("agent_type", models.CharField(blank=True, max_length=20)),
                (
                    "base_rate",
                    models.DecimalField(
                        decimal_places=4,
                        max_digits=7,
                        validators=[django.core.validators.MinValueValidator(Decimal("0.00"))],
                    ),
                ),
                (
                    "reward_rate",
                    models.DecimalField(
                        decimal_places=4,
                        default=Decimal("0"),
                        max_digits=7,
                        validators=[django.core.validators.MinValueValidator(Decimal("0.00"))],
                    ),
                ),
                (
                    "bonus_rate",
                    models.DecimalField(
                        decimal_places=4,
                        default=Decimal("0"),
                        max_digits=7,
                        validators=[django.core.validators.MinValueValidator(Decimal("0.00"))],
                    ),
                ),
                ("min_premium", models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True)),
                ("max_premium", models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True)),
                ("company", _company_fk()),
                (
                    "grid",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="rates",
                        to="commission.commissiongrid",
                    ),
                ),
                (
                    "tier",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="grid_rates",
                        to="commission.commissiontier",
                    ),
                ),
            ],
            options={
                "verbose_name": "Grid Rate",
                "verbose_name_plural": "Grid Rates",
                "ordering": ("grid_id", "id"),
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            ("min_premium__isnull", True),
                            ("max_premium__isnull", True),
                            ("max_premium__gte", models.F("min_premium")),
                            _connector="OR",
                        ),
                        name="ck_grid_rate_premium_band",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="DistributionSettings",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                *_timestamps(),
                (
                    "agent_share_percentage",
                    _percent_setting("Agent share of insurer commission without tier/override."),
                ),
                (
                    "misp_share_percentage",
                    _percent_setting("MISP share of insurer commission without tier/override."),
                ),
                (
                    "employee_share_percentage",
                    _percent_setting("Employee share of insurer commission without tier/override."),
                ),
                (
                    "reporting_employee_share_percentage",
                    _percent_setting("Slice of the employee commission moved to the reporting employee."),
                ),
                ("company", _company_fk()),
            ],
            options={
                "verbose_name": "Distribution Settings",
                "verbose_name_plural": "Distribution Settings",
                "constraints": [
                    models.UniqueConstraint(fields=("company",), name="uq_comm_distribution_settings_company"),
                ],
            },
        ),
        migrations.CreateModel(
            name="CommissionRecord",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                *_timestamps(),
                ("policy_number", models.CharField(max_length=80)),
                ("customer_name", models.CharField(blank=True, max_length=255)),
                ("product_type", models.CharField(blank=True, max_length=40)),
                ("provider", models.CharField(blank=True, max_length=120)),
                ("source_type", models.CharField(blank=True, max_length=20)),
                ("source_name", models.CharField(blank=True, max_length=255)),
                ("premium_amount", _money_field()),
                ("base_rate", _rate_field()),
                ("reward_rate", _rate_field()),
                ("bonus_rate", _rate_field()),
                ("total_rate", _rate_field()),
                ("insurer_commission", _money_field()),
                ("agent_commission", _money_field()),
                ("misp_commission", _money_field()),
                ("employee_commission", _money_field()),
                ("reporting_employee_commission", _money_field()),
                ("broker_share", _money_field()),
                ("grid_id", models.PositiveBigIntegerField(blank=True, null=True)),
                ("grid_table", models.CharField(blank=True, max_length=80)),
                ("tier_name", models.CharField(blank=True, max_length=80)),
                ("override_used", models.BooleanField(default=False)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("calculated", "Calculated"),
                            ("no_grid_match", "No grid match"),
                            ("error", "Error"),
                        ],
                        db_index=True,
                        default="calculated",
                        max_length=20,
                    ),
                ),
                ("error_detail", models.TextField(blank=True)),
                ("calc_date", models.DateTimeField()),
                ("company", _company_fk()),
                (
                    "policy",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="commission_records",
                        to="insurance_core.policy",
                    ),
                ),
            ],
            options={
                "verbose_name": "Commission Record",
                "verbose_name_plural": "Commission Records",
                "ordering": ("-calc_date", "-id"),
                "indexes": [
                    models.Index(fields=["company", "status"], name="idx_comm_record_cmp_status"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("company", "policy"), name="uq_comm_record_company_policy"),
                ],
            },
        ),
    ]
