from decimal import Decimal

import django.core.validators
import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("customers", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Policy",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("policy_number", models.CharField(max_length=80)),
                (
                    "product_type",
                    models.CharField(
                        choices=[
                            ("motor", "Motor"),
                            ("health", "Health"),
                            ("life", "Life"),
                            ("travel", "Travel"),
                            ("commercial", "Commercial"),
                        ],
                        db_index=True,
                        max_length=40,
                    ),
                ),
                ("provider", models.CharField(help_text="Insurer name as printed on the policy.", max_length=120)),
                ("plan_name", models.CharField(blank=True, max_length=120)),
                (
                    "customer_ref",
                    models.CharField(
                        blank=True,
                        help_text="Reference to the customer record in the CRM bounded context.",
                        max_length=64,
                    ),
                ),
                (
                    "customer_name",
                    models.CharField(
                        blank=True,
                        help_text="Snapshot label to avoid cross-context joins in listings.",
                        max_length=255,
                    ),
                ),
                (
                    "premium_amount",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0.00"),
                        max_digits=14,
                        validators=[django.core.validators.MinValueValidator(Decimal("0.00"))],
                    ),
                ),
                ("currency", models.CharField(default="INR", max_length=3)),
                (
                    "source_type",
                    models.CharField(
                        choices=[
                            ("employee", "Employee"),
                            ("agent", "Agent"),
                            ("misp", "MISP"),
                            ("direct", "Direct"),
                        ],
                        db_index=True,
                        default="direct",
                        max_length=20,
                    ),
                ),
                (
                    "source_id",
                    models.PositiveBigIntegerField(
                        blank=True,
                        help_text="Id of the selling agent/MISP/employee (by source_type).",
                        null=True,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("DRAFT", "Draft"),
                            ("ACTIVE", "Active"),
                            ("EXPIRED", "Expired"),
                            ("CANCELLED", "Cancelled"),
                        ],
                        db_index=True,
                        default="ACTIVE",
                        max_length=20,
                    ),
                ),
                ("start_date", models.DateField()),
                ("end_date", models.DateField()),
                (
                    "company",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="%(app_label)s_%(class)s_set",
                        to="customers.company",
                    ),
                ),
            ],
            options={
                "verbose_name": "Policy",
                "verbose_name_plural": "Policies",
                "ordering": ("-start_date", "-id"),
                "indexes": [
                    models.Index(fields=["company", "status", "start_date"], name="idx_pol_cmp_stat_start"),
                    models.Index(fields=["company", "product_type", "provider"], name="idx_pol_cmp_prod_prov"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("company", "policy_number"), name="uq_policy_number_per_company"),
                ],
            },
        ),
    ]
