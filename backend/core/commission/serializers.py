from __future__ import annotations

from rest_framework import serializers

from commission.models import CommissionGrid, CommissionRecord, CommissionTier, GridRate
from commission.selectors import CommissionFilters
from insurance_core.models import ProductType, SourceType
from tenancy.context import get_current_company


def _context_company(serializer):
    return (
        serializer.context.get("company")
        or getattr(serializer.context.get("request"), "company", None)
        or get_current_company()
    )


class CommissionTierSerializer(serializers.ModelSerializer):
    class Meta:
        model = CommissionTier
        fields = ("id", "name", "rank", "share_percentage", "created_at", "updated_at")
        read_only_fields = ("id", "created_at", "updated_at")

    def validate_name(self, value: str) -> str:
        value = (value or "").strip()
        if not value:
            raise serializers.ValidationError("name is required.")
        company = _context_company(self)
        duplicates = CommissionTier.all_objects.filter(company=company, name__iexact=value)
        if self.instance is not None:
            duplicates = duplicates.exclude(pk=self.instance.pk)
        if company is not None and duplicates.exists():
            raise serializers.ValidationError("A tier with this name already exists.")
        return value


class CommissionGridSerializer(serializers.ModelSerializer):
    rate_count = serializers.SerializerMethodField(read_only=True)

    class Meta:
        model = CommissionGrid
        fields = (
            "id",
            "name",
            "grid_table",
            "product_type",
            "provider",
            "effective_from",
            "effective_to",
            "is_active",
            "rate_count",
            "created_at",
            "updated_at",
        )
        read_only_fields = ("id", "rate_count", "created_at", "updated_at")

    def get_rate_count(self, obj) -> int:
        return GridRate.all_objects.filter(company_id=obj.company_id, grid_id=obj.id).count()

    def validate_product_type(self, value: str) -> str:
        value = (value or "").strip().lower()
        if value not in ProductType.values:
            raise serializers.ValidationError(f"product_type must be one of {sorted(ProductType.values)}.")
        return value

    def validate(self, attrs):
        effective_from = attrs.get("effective_from") or getattr(self.instance, "effective_from", None)
        effective_to = attrs.get("effective_to", getattr(self.instance, "effective_to", None))
        if effective_from and effective_to and effective_to < effective_from:
            raise serializers.ValidationError({"effective_to": "effective_to must be >= effective_from."})
        return attrs


class GridRateSerializer(serializers.ModelSerializer):
    grid_id = serializers.PrimaryKeyRelatedField(
        source="grid",
        queryset=CommissionGrid.all_objects.all(),
    )
    tier_id = serializers.PrimaryKeyRelatedField(
        source="tier",
        queryset=CommissionTier.all_objects.all(),
        required=False,
        allow_null=True,
    )

    class Meta:
        model = GridRate
        fields = (
            "id",
            "grid_id",
            "tier_id",
            "agent_type",
            "base_rate",
            "reward_rate",
            "bonus_rate",
            "min_premium",
            "max_premium",
            "created_at",
            "updated_at",
        )
        read_only_fields = ("id", "created_at", "updated_at")

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        company = _context_company(self)
        if company is not None:
            self.fields["grid_id"].queryset = CommissionGrid.all_objects.filter(company=company)
            self.fields["tier_id"].queryset = CommissionTier.all_objects.filter(company=company)

    def validate_agent_type(self, value: str) -> str:
        return (value or "").strip().upper()

    def validate(self, attrs):
        min_premium = attrs.get("min_premium", getattr(self.instance, "min_premium", None))
        max_premium = attrs.get("max_premium", getattr(self.instance, "max_premium", None))
        if min_premium is not None and max_premium is not None and max_premium < min_premium:
            raise serializers.ValidationError({"max_premium": "max_premium must be >= min_premium."})
        return attrs


class CommissionRecordSerializer(serializers.ModelSerializer):
    class Meta:
        model = CommissionRecord
        fields = (
            "id",
            "policy_id",
            "policy_number",
            "customer_name",
            "product_type",
            "provider",
            "source_type",
            "source_name",
            "premium_amount",
            "base_rate",
            "reward_rate",
            "bonus_rate",
            "total_rate",
            "insurer_commission",
            "agent_commission",
            "misp_commission",
            "employee_commission",
            "reporting_employee_commission",
            "broker_share",
            "grid_id",
            "grid_table",
            "tier_name",
            "override_used",
            "status",
            "error_detail",
            "calc_date",
            "updated_at",
        )
        read_only_fields = fields


class PolicyIdsField(serializers.Field):
    """Policy ids as a JSON list or a comma separated query string."""

    default_error_messages = {"invalid": "policy_ids must be integers."}

    def to_internal_value(self, data) -> tuple[int, ...]:
        if isinstance(data, (list, tuple)):
            raw_ids = data
        else:
            raw_ids = [part for part in str(data or "").split(",") if part.strip()]
        try:
            return tuple(int(str(part).strip()) for part in raw_ids)
        except ValueError:
            self.fail("invalid")

    def to_representation(self, value):
        return list(value)


class CommissionFilterSerializer(serializers.Serializer):
    product_type = serializers.CharField(required=False, allow_blank=True)
    provider = serializers.CharField(required=False, allow_blank=True)
    source_type = serializers.ChoiceField(choices=SourceType.choices, required=False, allow_blank=True)
    start_date_from = serializers.DateField(required=False, allow_null=True)
    start_date_to = serializers.DateField(required=False, allow_null=True)
    search = serializers.CharField(required=False, allow_blank=True)
    policy_ids = PolicyIdsField(required=False)

    def validate(self, attrs):
        start_from = attrs.get("start_date_from")
        start_to = attrs.get("start_date_to")
        if start_from and start_to and start_to < start_from:
            raise serializers.ValidationError({"start_date_to": "start_date_to must be >= start_date_from."})
        return attrs

    def to_filters(self) -> CommissionFilters:
        data = self.validated_data
        return CommissionFilters(
            product_type=(data.get("product_type") or "").strip().lower(),
            provider=(data.get("provider") or "").strip(),
            source_type=data.get("source_type") or "",
            start_date_from=data.get("start_date_from"),
            start_date_to=data.get("start_date_to"),
            search=(data.get("search") or "").strip(),
            policy_ids=data.get("policy_ids") or (),
        )


class CommissionResultSerializer(serializers.Serializer):
    """Read-only view of an engine calculation result."""

    policy_id = serializers.IntegerField()
    policy_number = serializers.CharField()
    customer_name = serializers.CharField()
    product_type = serializers.CharField()
    provider = serializers.CharField()
    premium_amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    source_type = serializers.CharField()
    source_id = serializers.IntegerField(allow_null=True)
    source_name = serializers.CharField()
    source_label = serializers.CharField(read_only=True)
    base_rate = serializers.DecimalField(max_digits=7, decimal_places=4, source="rates.base_rate")
    reward_rate = serializers.DecimalField(max_digits=7, decimal_places=4, source="rates.reward_rate")
    bonus_rate = serializers.DecimalField(max_digits=7, decimal_places=4, source="rates.bonus_rate")
    total_rate = serializers.DecimalField(max_digits=7, decimal_places=4, source="rates.total_rate")
    insurer_commission = serializers.DecimalField(
        max_digits=14, decimal_places=2, source="rates.insurer_commission"
    )
    agent_commission = serializers.DecimalField(
        max_digits=14, decimal_places=2, source="allocations.agent_commission"
    )
    misp_commission = serializers.DecimalField(
        max_digits=14, decimal_places=2, source="allocations.misp_commission"
    )
    employee_commission = serializers.DecimalField(
        max_digits=14, decimal_places=2, source="allocations.employee_commission"
    )
    reporting_employee_commission = serializers.DecimalField(
        max_digits=14, decimal_places=2, source="allocations.reporting_employee_commission"
    )
    broker_share = serializers.DecimalField(max_digits=14, decimal_places=2, source="allocations.broker_share")
    tier_name = serializers.CharField(source="allocations.tier_name")
    override_used = serializers.BooleanField(source="allocations.override_used")
    grid_id = serializers.IntegerField(allow_null=True)
    grid_table = serializers.CharField()
    status = serializers.CharField()
    error_detail = serializers.CharField()
    calc_date = serializers.DateTimeField()


class SyncFailureSerializer(serializers.Serializer):
    policy_id = serializers.IntegerField()
    detail = serializers.CharField()
