from rest_framework.response import Response
from rest_framework.views import APIView

from ledger.models import LedgerEntry
from ledger.serializers import LedgerEntrySerializer
from tenancy.permissions import IsTenantRoleAllowed


class TenantLedgerEntryListAPIView(APIView):
    permission_classes = [IsTenantRoleAllowed]
    tenant_resource_key = "ledger"

    def get(self, request):
        try:
            limit = int(request.query_params.get("limit", "200"))
        except ValueError:
            limit = 200
        limit = max(1, min(limit, 1000))

        entries = LedgerEntry.all_objects.filter(company=request.company)
        event_type = (request.query_params.get("event_type") or "").strip()
        if event_type:
            entries = entries.filter(event_type=event_type)

        entries = entries.order_by("-occurred_at", "-id")[:limit]
        return Response(LedgerEntrySerializer(entries, many=True).data)
