from django.contrib import admin

from insurance_core.models import Policy


@admin.register(Policy)
class PolicyAdmin(admin.ModelAdmin):
    list_display = (
        "policy_number",
        "company",
        "product_type",
        "provider",
        "premium_amount",
        "source_type",
        "source_id",
        "status",
        "start_date",
    )
    list_filter = ("product_type", "source_type", "status", "company")
    search_fields = ("policy_number", "customer_name", "provider")
    readonly_fields = ("created_at", "updated_at")

    def get_queryset(self, request):
        # Default manager is tenant-scoped; admin must see all policies.
        return Policy.all_objects.all()
