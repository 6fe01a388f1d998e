from django.db import models

from tenancy.context import get_current_company


class TenantQuerySet(models.QuerySet):
    def for_company(self, company):
        return self.filter(company=company)


class TenantManager(models.Manager.from_queryset(TenantQuerySet)):
    """Default manager that fails closed when no tenant is bound."""

    def get_queryset(self):
        queryset = super().get_queryset()
        company = get_current_company()
        if company is None:
            return queryset.none()
        return queryset.filter(company=company)
