from django.contrib import admin

from ledger.models import LedgerEntry


@admin.register(LedgerEntry)
class LedgerEntryAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "company",
        "chain_id",
        "action",
        "event_type",
        "resource_label",
        "occurred_at",
        "actor_username",
    )
    list_filter = ("action", "company")
    search_fields = ("event_type", "resource_label", "resource_pk", "actor_username", "chain_id")
    ordering = ("-occurred_at", "-id")
    readonly_fields = [field.name for field in LedgerEntry._meta.fields]

    def get_queryset(self, request):
        return LedgerEntry.all_objects.all()

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
