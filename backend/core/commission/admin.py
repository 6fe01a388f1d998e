from django.contrib import admin

from commission.models import (
    Agent,
    CommissionGrid,
    CommissionRecord,
    CommissionTier,
    DistributionSettings,
    Employee,
    GridRate,
    Misp,
)


class _AllTenantsAdmin(admin.ModelAdmin):
    readonly_fields = ("created_at", "updated_at")

    def get_queryset(self, request):
        # Default managers are tenant-scoped; admin must see every tenant.
        return self.model.all_objects.all()


class GridRateInline(admin.TabularInline):
    model = GridRate
    extra = 0
    fields = ("tier", "agent_type", "base_rate", "reward_rate", "bonus_rate", "min_premium", "max_premium")

    def get_queryset(self, request):
        return GridRate.all_objects.all()


@admin.register(CommissionGrid)
class CommissionGridAdmin(_AllTenantsAdmin):
    list_display = ("name", "grid_table", "company", "product_type", "provider", "effective_from", "effective_to", "is_active")
    list_filter = ("product_type", "is_active", "company")
    search_fields = ("name", "grid_table", "provider")
    inlines = (GridRateInline,)


@admin.register(CommissionTier)
class CommissionTierAdmin(_AllTenantsAdmin):
    list_display = ("name", "company", "rank", "share_percentage")
    list_filter = ("company",)


@admin.register(Agent)
class AgentAdmin(_AllTenantsAdmin):
    list_display = ("name", "code", "company", "agent_type", "tier", "override_percentage", "is_active")
    list_filter = ("agent_type", "is_active", "company")
    search_fields = ("name", "code")


@admin.register(Misp)
class MispAdmin(_AllTenantsAdmin):
    list_display = ("name", "code", "company", "dealer_location", "tier", "override_percentage", "is_active")
    list_filter = ("is_active", "company")
    search_fields = ("name", "code", "dealer_location")


@admin.register(Employee)
class EmployeeAdmin(_AllTenantsAdmin):
    list_display = ("name", "code", "company", "reporting_employee", "tier", "override_percentage", "is_active")
    list_filter = ("is_active", "company")
    search_fields = ("name", "code")


@admin.register(DistributionSettings)
class DistributionSettingsAdmin(_AllTenantsAdmin):
    list_display = (
        "company",
        "agent_share_percentage",
        "misp_share_percentage",
        "employee_share_percentage",
        "reporting_employee_share_percentage",
    )


@admin.register(CommissionRecord)
class CommissionRecordAdmin(_AllTenantsAdmin):
    list_display = (
        "policy_number",
        "company",
        "status",
        "premium_amount",
        "insurer_commission",
        "broker_share",
        "grid_table",
        "calc_date",
    )
    list_filter = ("status", "product_type", "company")
    search_fields = ("policy_number", "customer_name")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
