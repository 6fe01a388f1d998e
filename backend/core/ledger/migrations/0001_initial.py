import django.core.serializers.json
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("customers", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="LedgerEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("actor_username", models.CharField(blank=True, max_length=150)),
                (
                    "action",
                    models.CharField(
                        choices=[
                            ("CREATE", "Create"),
                            ("UPDATE", "Update"),
                            ("DELETE", "Delete"),
                            ("SYSTEM", "System"),
                        ],
                        default="SYSTEM",
                        max_length=20,
                    ),
                ),
                ("event_type", models.CharField(blank=True, max_length=120)),
                ("resource_label", models.CharField(max_length=200)),
                ("resource_pk", models.CharField(blank=True, max_length=64)),
                ("occurred_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("correlation_id", models.CharField(blank=True, max_length=64)),
                ("request_method", models.CharField(blank=True, max_length=12)),
                ("request_path", models.CharField(blank=True, max_length=255)),
                ("chain_id", models.CharField(db_index=True, max_length=80)),
                ("prev_hash", models.CharField(blank=True, default="", max_length=64)),
                ("entry_hash", models.CharField(max_length=64, unique=True)),
                (
                    "data_before",
                    models.JSONField(blank=True, encoder=django.core.serializers.json.DjangoJSONEncoder, null=True),
                ),
                (
                    "data_after",
                    models.JSONField(blank=True, encoder=django.core.serializers.json.DjangoJSONEncoder, null=True),
                ),
                (
                    "metadata",
                    models.JSONField(blank=True, default=dict, encoder=django.core.serializers.json.DjangoJSONEncoder),
                ),
                (
                    "actor",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="ledger_entries",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "company",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="ledger_entries",
                        to="customers.company",
                    ),
                ),
            ],
            options={
                "verbose_name": "Ledger Entry",
                "verbose_name_plural": "Ledger Entries",
                "ordering": ("-occurred_at", "-id"),
                "indexes": [
                    models.Index(fields=["chain_id", "occurred_at"], name="idx_ledger_chain_occurred"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("chain_id", "prev_hash"), name="uq_ledger_prev_hash_per_chain"),
                ],
            },
        ),
    ]
