import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from django.conf import settings
from django.http import JsonResponse

from customers.models import Company
from tenancy.context import reset_current_company, set_current_company


@dataclass(frozen=True)
class TenantResolutionResult:
    company: Optional[Company]
    error_response: Optional[JsonResponse] = None


class TenantContextMiddleware:
    """Bind the request tenant (`request.company`) and the tenant contextvar.

    Legacy mode resolves the tenant from the `X-Tenant-ID` header or the host
    subdomain. With django-tenants the schema middleware has already set
    `request.tenant`; this middleware only bridges it into the context.
    """

    def __init__(self, get_response):
        self.get_response = get_response
        self.logger = logging.getLogger(__name__)
        self.tenant_id_header = getattr(settings, "TENANT_ID_HEADER", "X-Tenant-ID")
        self.required_path_prefixes = tuple(
            getattr(settings, "TENANT_REQUIRED_PATH_PREFIXES", ["/api/"])
        )
        self.exempt_path_prefixes = tuple(
            getattr(settings, "TENANT_EXEMPT_PATH_PREFIXES", ["/api/auth/token/"])
        )
        self.public_hosts = set(
            host.lower() for host in getattr(settings, "TENANT_PUBLIC_HOSTS", [])
        )
        self.reserved_subdomains = set(
            subdomain.lower()
            for subdomain in getattr(settings, "TENANT_RESERVED_SUBDOMAINS", [])
        )
        self.base_domain = getattr(settings, "TENANT_BASE_DOMAIN", "").lower()

    def __call__(self, request):
        request.correlation_id = self._resolve_correlation_id(request)
        tenant_resolution = self._resolve_company(request)

        if tenant_resolution.error_response is not None:
            tenant_resolution.error_response["X-Correlation-ID"] = request.correlation_id
            return tenant_resolution.error_response

        token = set_current_company(tenant_resolution.company)
        request.company = tenant_resolution.company
        try:
            response = self.get_response(request)
            response["X-Correlation-ID"] = request.correlation_id
            return response
        finally:
            reset_current_company(token)

    def _requires_tenant(self, path: str) -> bool:
        if path.startswith(self.exempt_path_prefixes):
            return False
        return path.startswith(self.required_path_prefixes)

    def _resolve_company(self, request) -> TenantResolutionResult:
        if not self._requires_tenant(request.path):
            return TenantResolutionResult(company=None)

        if getattr(settings, "DJANGO_TENANTS_ENABLED", False):
            return self._resolve_company_from_django_tenants(request)

        header_value = request.headers.get(self.tenant_id_header, "").strip().lower()
        host_company = self._company_from_host(request.get_host())

        if header_value:
            header_company = (
                Company.objects.filter(tenant_code=header_value, is_active=True)
                .only("id", "tenant_code", "rbac_overrides")
                .first()
            )
            if header_company is None:
                self.logger.info(
                    "unknown tenant identifier",
                    extra={"correlation_id": request.correlation_id, "path": request.path},
                )
                return self._error("Invalid tenant identifier.", status=404)

            if host_company is not None and host_company.id != header_company.id:
                return self._error("Tenant mismatch between host and header.", status=400)

            return TenantResolutionResult(company=header_company)

        if host_company is not None:
            return TenantResolutionResult(company=host_company)

        return self._error(
            "Tenant not provided. Send X-Tenant-ID or use tenant subdomain.",
            status=400,
        )

    def _resolve_company_from_django_tenants(self, request) -> TenantResolutionResult:
        from django_tenants.utils import get_public_schema_name

        tenant = getattr(request, "tenant", None)
        company = None
        if tenant is not None and tenant.schema_name != get_public_schema_name():
            company = tenant

        header_value = request.headers.get(self.tenant_id_header, "").strip().lower()
        if header_value and company is not None and company.tenant_code != header_value:
            return self._error("Tenant mismatch between host and header.", status=400)

        if company is None:
            return self._error(
                "Tenant not provided. Send X-Tenant-ID or use tenant subdomain.",
                status=400,
            )
        return TenantResolutionResult(company=company)

    def _company_from_host(self, host_with_port: str) -> Optional[Company]:
        host = host_with_port.split(":", 1)[0].lower()
        if not host or host in self.public_hosts:
            return None

        subdomain = self._extract_subdomain(host)
        if not subdomain or subdomain in self.reserved_subdomains:
            return None

        return (
            Company.objects.filter(subdomain=subdomain, is_active=True)
            .only("id", "tenant_code", "rbac_overrides")
            .first()
        )

    def _extract_subdomain(self, host: str) -> Optional[str]:
        if self.base_domain:
            suffix = self.base_domain
            if not suffix.startswith("."):
                suffix = f".{suffix}"

            if host.endswith(suffix):
                subdomain = host[: -len(suffix)]
                if subdomain and "." not in subdomain:
                    return subdomain
                return None

        if host.endswith(".localhost"):
            local_subdomain = host.split(".", 1)[0]
            return local_subdomain if local_subdomain else None

        parts = host.split(".")
        if len(parts) >= 3:
            return parts[0]

        return None

    @staticmethod
    def _error(detail: str, *, status: int) -> TenantResolutionResult:
        return TenantResolutionResult(
            company=None,
            error_response=JsonResponse({"detail": detail}, status=status),
        )

    @staticmethod
    def _resolve_correlation_id(request) -> str:
        header_value = (request.headers.get("X-Correlation-ID", "") or "").strip()
        return header_value or str(uuid.uuid4())
