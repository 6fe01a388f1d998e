import json
import logging
from pathlib import Path

import environ

BASE_DIR = Path(__file__).resolve().parent.parent

env = environ.Env(
    DEBUG=(bool, False),
    ALLOWED_HOSTS=(list, ["localhost", "127.0.0.1", "testserver"]),
    CORS_ALLOWED_ORIGINS=(list, []),
    CSRF_TRUSTED_ORIGINS=(list, []),
)
environ.Env.read_env(BASE_DIR / ".env")


def read_secret_from_manager(secret_resource: str, default_value: str = "") -> str:
    """
    Reads a secret value from GCP Secret Manager.

    Expected format:
    projects/<project-id>/secrets/<secret-name>
    or
    projects/<project-id>/secrets/<secret-name>/versions/<version>
    """

    if not secret_resource:
        return default_value

    from google.api_core.exceptions import GoogleAPIError
    from google.cloud import secretmanager

    full_secret_name = secret_resource
    if "/versions/" not in full_secret_name:
        full_secret_name = f"{full_secret_name}/versions/latest"

    try:
        client = secretmanager.SecretManagerServiceClient()
        response = client.access_secret_version(request={"name": full_secret_name})
    except GoogleAPIError:
        logging.getLogger(__name__).warning(
            "secret manager lookup failed; using default",
            extra={"secret_resource": secret_resource},
        )
        return default_value
    return response.payload.data.decode("utf-8")


SECRET_KEY = env("SECRET_KEY", default="")
if not SECRET_KEY:
    SECRET_KEY = read_secret_from_manager(
        env("DJANGO_SECRET_KEY_SECRET", default=""),
        default_value="django-insecure-change-me",
    )

DEBUG = env("DEBUG")
ALLOWED_HOSTS = env("ALLOWED_HOSTS")

USE_X_FORWARDED_HOST = env.bool("USE_X_FORWARDED_HOST", default=True)
SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")

DATABASE_ENGINE = env("DATABASE_ENGINE", default="django_tenants.postgresql_backend").strip()
DJANGO_TENANTS_ENABLED = DATABASE_ENGINE == "django_tenants.postgresql_backend"

# django-tenants: tenant metadata is stored in the public schema.
TENANT_MODEL = "customers.Company"
TENANT_DOMAIN_MODEL = "customers.Domain"
SHOW_PUBLIC_IF_NO_TENANT_FOUND = env.bool("SHOW_PUBLIC_IF_NO_TENANT_FOUND", default=True)

AUTHENTICATION_BACKENDS = ("django.contrib.auth.backends.ModelBackend",)

if DJANGO_TENANTS_ENABLED:
    SHARED_APPS = [
        "django_tenants",
        "django.contrib.admin",
        "django.contrib.auth",
        "django.contrib.contenttypes",
        "django.contrib.sessions",
        "django.contrib.messages",
        "django.contrib.staticfiles",
        "corsheaders",
        "rest_framework",
        "rest_framework.authtoken",
        "tenancy.apps.TenancyConfig",
        "customers.apps.CustomersConfig",
    ]

    TENANT_APPS = [
        # `auth` and `contenttypes` stay in the public schema so users/tokens are
        # shared; tenant schemas reach them through `search_path`.
        "tenancy.apps.TenancyConfig",
        "insurance_core.apps.InsuranceCoreConfig",
        "commission.apps.CommissionConfig",
        "ledger.apps.LedgerConfig",
    ]

    INSTALLED_APPS = SHARED_APPS + [app for app in TENANT_APPS if app not in SHARED_APPS]

    DATABASE_ROUTERS = ("django_tenants.routers.TenantSyncRouter",)
    ROOT_URLCONF = "broker_backend.urls"
    PUBLIC_SCHEMA_URLCONF = "broker_backend.urls_public"

    MIDDLEWARE = [
        # Must be at the top: selects schema based on host.
        "django_tenants.middleware.main.TenantMainMiddleware",
        "django.middleware.security.SecurityMiddleware",
        "corsheaders.middleware.CorsMiddleware",
        "django.contrib.sessions.middleware.SessionMiddleware",
        "django.middleware.common.CommonMiddleware",
        "tenancy.middleware.TenantContextMiddleware",
        "django.middleware.csrf.CsrfViewMiddleware",
        "django.contrib.auth.middleware.AuthenticationMiddleware",
        "django.contrib.messages.middleware.MessageMiddleware",
        "django.middleware.clickjacking.XFrameOptionsMiddleware",
    ]
else:
    # Legacy mode (sqlite, etc.) - no schema-per-tenant.
    INSTALLED_APPS = [
        "django.contrib.admin",
        "django.contrib.auth",
        "django.contrib.contenttypes",
        "django.contrib.sessions",
        "django.contrib.messages",
        "django.contrib.staticfiles",
        "corsheaders",
        "rest_framework",
        "rest_framework.authtoken",
        "tenancy.apps.TenancyConfig",
        "customers.apps.CustomersConfig",
        "insurance_core.apps.InsuranceCoreConfig",
        "commission.apps.CommissionConfig",
        "ledger.apps.LedgerConfig",
    ]

    MIDDLEWARE = [
        "django.middleware.security.SecurityMiddleware",
        "corsheaders.middleware.CorsMiddleware",
        "django.contrib.sessions.middleware.SessionMiddleware",
        "django.middleware.common.CommonMiddleware",
        "tenancy.middleware.TenantContextMiddleware",
        "django.middleware.csrf.CsrfViewMiddleware",
        "django.contrib.auth.middleware.AuthenticationMiddleware",
        "django.contrib.messages.middleware.MessageMiddleware",
        "django.middleware.clickjacking.XFrameOptionsMiddleware",
    ]
    ROOT_URLCONF = "broker_backend.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "broker_backend.wsgi.application"
ASGI_APPLICATION = "broker_backend.asgi.application"

database_password = env("DATABASE_PASSWORD", default="")
if not database_password:
    database_password = read_secret_from_manager(
        env("DATABASE_PASSWORD_SECRET", default=""),
        default_value="",
    )

cloud_sql_instance = env("CLOUD_SQL_INSTANCE", default="")
database_host = (
    f"/cloudsql/{cloud_sql_instance}"
    if cloud_sql_instance
    else env("DATABASE_HOST", default="127.0.0.1")
)
database_port = "" if cloud_sql_instance else env("DATABASE_PORT", default="5432")

if DATABASE_ENGINE == "django.db.backends.sqlite3":
    DATABASES = {
        "default": {
            "ENGINE": DATABASE_ENGINE,
            "NAME": env("SQLITE_NAME", default=str(BASE_DIR / "db.sqlite3")),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": DATABASE_ENGINE,
            "NAME": env("DATABASE_NAME", default="broker_db"),
            "USER": env("DATABASE_USER", default="broker_user"),
            "PASSWORD": database_password,
            "HOST": database_host,
            "PORT": database_port,
            "CONN_MAX_AGE": env.int("DATABASE_CONN_MAX_AGE", default=60),
            "OPTIONS": (
                {}
                if cloud_sql_instance
                else {"sslmode": env("DATABASE_SSLMODE", default="disable")}
            ),
        }
    }

AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
]

LANGUAGE_CODE = "en-in"
TIME_ZONE = "Asia/Kolkata"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

CORS_ALLOWED_ORIGINS = env("CORS_ALLOWED_ORIGINS")
CSRF_TRUSTED_ORIGINS = env("CSRF_TRUSTED_ORIGINS")

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (
        "rest_framework.authentication.TokenAuthentication",
        "rest_framework.authentication.SessionAuthentication",
        "rest_framework.authentication.BasicAuthentication",
    ),
    "DEFAULT_PERMISSION_CLASSES": (
        "rest_framework.permissions.IsAuthenticated",
    ),
}

LOG_LEVEL = env("LOG_LEVEL", default="INFO").strip().upper()
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "mask_pan_aadhaar": {"()": "tenancy.logging.MaskPANAadhaarFilter"},
    },
    "formatters": {
        "default": {
            "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "filters": ["mask_pan_aadhaar"],
        },
    },
    "root": {"handlers": ["console"], "level": LOG_LEVEL},
    "loggers": {
        "django.db.backends": {"level": "WARNING"},
    },
}

TENANT_ID_HEADER = env("TENANT_ID_HEADER", default="X-Tenant-ID")
TENANT_BASE_DOMAIN = env("TENANT_BASE_DOMAIN", default="").strip().lower()
TENANT_REQUIRED_PATH_PREFIXES = env.list("TENANT_REQUIRED_PATH_PREFIXES", default=["/api/"])
TENANT_EXEMPT_PATH_PREFIXES = env.list(
    "TENANT_EXEMPT_PATH_PREFIXES",
    default=["/api/auth/token/"],
)
TENANT_PUBLIC_HOSTS = [
    host.strip().lower()
    for host in env.list(
        "TENANT_PUBLIC_HOSTS",
        default=["localhost", "127.0.0.1", "testserver"],
    )
    if host.strip()
]
TENANT_RESERVED_SUBDOMAINS = [
    subdomain.strip().lower()
    for subdomain in env.list(
        "TENANT_RESERVED_SUBDOMAINS",
        default=["www", "api", "admin", "static", "media"],
    )
    if subdomain.strip()
]

raw_tenant_role_matrices = env("TENANT_ROLE_MATRICES", default="")
try:
    TENANT_ROLE_MATRICES = (
        json.loads(raw_tenant_role_matrices) if raw_tenant_role_matrices else {}
    )
except json.JSONDecodeError:
    TENANT_ROLE_MATRICES = {}

# Commission engine.
COMMISSION_GRID_DATE_BASIS = env("COMMISSION_GRID_DATE_BASIS", default="run_date").strip().lower()
COMMISSION_DEFAULT_AGENT_SHARE_PCT = env("COMMISSION_DEFAULT_AGENT_SHARE_PCT", default="50")
COMMISSION_DEFAULT_MISP_SHARE_PCT = env("COMMISSION_DEFAULT_MISP_SHARE_PCT", default="50")
COMMISSION_DEFAULT_EMPLOYEE_SHARE_PCT = env("COMMISSION_DEFAULT_EMPLOYEE_SHARE_PCT", default="60")
COMMISSION_REPORTING_EMPLOYEE_SHARE_PCT = env(
    "COMMISSION_REPORTING_EMPLOYEE_SHARE_PCT",
    default="10",
)
