from __future__ import annotations

from decimal import Decimal

from django.db import models
from django.http import HttpResponse
from rest_framework import generics, status, viewsets
from rest_framework.response import Response
from rest_framework.views import APIView

from commission.models import CommissionGrid, CommissionRecord, CommissionTier, GridRate
from commission.serializers import (
    CommissionFilterSerializer,
    CommissionGridSerializer,
    CommissionRecordSerializer,
    CommissionResultSerializer,
    CommissionTierSerializer,
    GridRateSerializer,
    SyncFailureSerializer,
)
from commission.services.batch import calculate_policy_commissions, sync_policy_commissions
from commission.services.export import export_filename, summarize_results, write_results_csv
from ledger.models import LedgerEntry
from ledger.services import append_ledger_entry
from tenancy.permissions import IsTenantRoleAllowed


def _json_summary(results) -> dict:
    return {
        key: str(value) if isinstance(value, Decimal) else value
        for key, value in summarize_results(results).items()
    }


def _filters_from(data):
    serializer = CommissionFilterSerializer(data=data)
    serializer.is_valid(raise_exception=True)
    return serializer.to_filters()


class CommissionCalculateAPIView(APIView):
    permission_classes = [IsTenantRoleAllowed]
    tenant_resource_key = "commission_reports"

    def get(self, request):
        filters = _filters_from(request.query_params)
        batch = calculate_policy_commissions(request.company, filters)
        return Response(
            {
                "calc_date": batch.calc_date,
                "skipped_grid_rows": batch.skipped_grid_rows,
                "summary": _json_summary(batch.results),
                "results": CommissionResultSerializer(batch.results, many=True).data,
            }
        )


class CommissionSyncAPIView(APIView):
    permission_classes = [IsTenantRoleAllowed]
    tenant_resource_key = "commission_sync"

    def post(self, request):
        filters = _filters_from(request.data)
        report = sync_policy_commissions(
            request.company,
            actor=request.user,
            filters=filters,
            request=request,
        )
        return Response(
            {
                "calc_date": report.batch.calc_date,
                "created": report.created,
                "updated": report.updated,
                "synced": report.synced,
                "failures": SyncFailureSerializer(report.failures, many=True).data,
                "summary": _json_summary(report.batch.results),
            },
            status=status.HTTP_200_OK,
        )


class CommissionExportAPIView(APIView):
    permission_classes = [IsTenantRoleAllowed]
    tenant_resource_key = "commission_reports"

    def get(self, request):
        filters = _filters_from(request.query_params)
        batch = calculate_policy_commissions(request.company, filters)

        response = HttpResponse(content_type="text/csv; charset=utf-8")
        response["Content-Disposition"] = f'attachment; filename="{export_filename(batch.calc_date)}"'
        write_results_csv(batch.results, response)
        return response


class CommissionRecordListAPIView(generics.ListAPIView):
    serializer_class = CommissionRecordSerializer
    permission_classes = [IsTenantRoleAllowed]
    tenant_resource_key = "commission_records"

    def get_queryset(self):
        company = getattr(self.request, "company", None)
        if company is None:
            return CommissionRecord.objects.none()

        queryset = CommissionRecord.all_objects.filter(company=company)

        status_filter = (self.request.query_params.get("status") or "").strip().lower()
        if status_filter:
            queryset = queryset.filter(status=status_filter)

        product_type = (self.request.query_params.get("product_type") or "").strip().lower()
        if product_type:
            queryset = queryset.filter(product_type=product_type)

        search = (self.request.query_params.get("q") or "").strip()
        if search:
            queryset = queryset.filter(
                models.Q(policy_number__icontains=search)
                | models.Q(customer_name__icontains=search)
            )

        return queryset.order_by("policy_number", "id")


class _AuditedTenantViewSet(viewsets.ModelViewSet):
    """Tenant-scoped CRUD whose writes are appended to the tenant ledger."""

    permission_classes = [IsTenantRoleAllowed]
    model = None
    ordering = ("id",)

    def get_queryset(self):
        company = getattr(self.request, "company", None)
        if company is None:
            return self.model.objects.none()
        return self.model.all_objects.filter(company=company).order_by(*self.ordering)

    def get_serializer_context(self):
        ctx = super().get_serializer_context()
        ctx["company"] = getattr(self.request, "company", None)
        return ctx

    def _append_ledger(self, action: str, instance, *, before=None, after=None):
        append_ledger_entry(
            company=self.request.company,
            actor=self.request.user,
            action=action,
            resource_label=self.model._meta.label,
            resource_pk=str(instance.pk),
            request=self.request,
            data_before=before,
            data_after=after,
            metadata={"tenant_resource_key": self.tenant_resource_key},
        )

    def perform_create(self, serializer):
        instance = serializer.save(company=self.request.company)
        self._append_ledger(LedgerEntry.ACTION_CREATE, instance, after=self.get_serializer(instance).data)

    def perform_update(self, serializer):
        before = self.get_serializer(serializer.instance).data
        instance = serializer.save()
        self._append_ledger(LedgerEntry.ACTION_UPDATE, instance, before=before, after=self.get_serializer(instance).data)

    def destroy(self, request, *args, **kwargs):
        try:
            return super().destroy(request, *args, **kwargs)
        except models.ProtectedError:
            return Response(
                {"detail": "Resource is referenced by other records and cannot be deleted."},
                status=status.HTTP_409_CONFLICT,
            )

    def perform_destroy(self, instance):
        before = self.get_serializer(instance).data
        pk = instance.pk
        instance.delete()
        instance.pk = pk
        self._append_ledger(LedgerEntry.ACTION_DELETE, instance, before=before)


class CommissionTierViewSet(_AuditedTenantViewSet):
    model = CommissionTier
    serializer_class = CommissionTierSerializer
    tenant_resource_key = "commission_tiers"
    ordering = ("rank", "name", "id")


class CommissionGridViewSet(_AuditedTenantViewSet):
    model = CommissionGrid
    serializer_class = CommissionGridSerializer
    tenant_resource_key = "commission_grids"
    ordering = ("product_type", "provider", "id")

    def get_queryset(self):
        queryset = super().get_queryset()
        product_type = (self.request.query_params.get("product_type") or "").strip().lower()
        if product_type:
            queryset = queryset.filter(product_type=product_type)
        return queryset


class GridRateViewSet(_AuditedTenantViewSet):
    model = GridRate
    serializer_class = GridRateSerializer
    tenant_resource_key = "commission_grids"
    ordering = ("grid_id", "id")

    def get_queryset(self):
        queryset = super().get_queryset()
        grid_id = self.request.query_params.get("grid_id")
        if grid_id:
            try:
                queryset = queryset.filter(grid_id=int(grid_id))
            except ValueError:
                return queryset.none()
        return queryset
