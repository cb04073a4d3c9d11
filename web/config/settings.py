"""Django settings for the checkout web service.

Values come from environment variables so the same image runs in
development, CI and production. Shop behaviour switches are prefixed with
``SHOP_`` and gateway transport tuning with ``HTTP_``.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).strip().lower() in ("1", "true", "yes", "on")


SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-insecure-change-me")
DEBUG = env_bool("DJANGO_DEBUG", False)
ALLOWED_HOSTS = [h for h in os.getenv("DJANGO_ALLOWED_HOSTS", "*").split(",") if h]

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "rest_framework",
    "apps.orders",
]

MIDDLEWARE = [
    "common.middleware.RequestContextMiddleware",
    "common.middleware.ApiSizeLimitMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
]

ROOT_URLCONF = "config.urls"
WSGI_APPLICATION = "config.wsgi.application"

if os.getenv("POSTGRES_DB"):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.getenv("POSTGRES_DB"),
            "USER": os.getenv("POSTGRES_USER", "app"),
            "PASSWORD": os.getenv("POSTGRES_PASSWORD", "app"),
            "HOST": os.getenv("POSTGRES_HOST", "orders-db"),
            "PORT": os.getenv("POSTGRES_PORT", "5432"),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": os.getenv("SQLITE_PATH", str(BASE_DIR / "db.sqlite3")),
        }
    }

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"
USE_TZ = True
TIME_ZONE = "UTC"
USE_I18N = True
LANGUAGE_CODE = "en-us"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": ["rest_framework.authentication.SessionAuthentication"],
    "DEFAULT_PERMISSION_CLASSES": ["rest_framework.permissions.AllowAny"],
    "DEFAULT_THROTTLE_RATES": {
        "orders_list": os.getenv("THROTTLE_ORDERS_LIST", "600/min"),
        "orders_create": os.getenv("THROTTLE_ORDERS_CREATE", "120/min"),
        "orders_detail": os.getenv("THROTTLE_ORDERS_DETAIL", "600/min"),
        "orders_payments": os.getenv("THROTTLE_ORDERS_PAYMENTS", "60/min"),
        "payments_callback": os.getenv("THROTTLE_PAYMENTS_CALLBACK", "600/min"),
    },
}

# ---- Shop ----
SHOP_SEND_CONFIRMATION = env_bool("SHOP_SEND_CONFIRMATION", True)
SHOP_SEND_ADMIN_NOTIFICATION = env_bool("SHOP_SEND_ADMIN_NOTIFICATION", False)
SHOP_ALLOW_ZERO_ORDER_TOTAL = env_bool("SHOP_ALLOW_ZERO_ORDER_TOTAL", False)
SHOP_BASE_CURRENCY = os.getenv("SHOP_BASE_CURRENCY", "EUR")
SHOP_CUSTOMER_GROUP = os.getenv("SHOP_CUSTOMER_GROUP", "customers")
SHOP_ADMIN_EMAIL = os.getenv("SHOP_ADMIN_EMAIL", "")
SHOP_ORDER_REFERENCE_PREFIX = os.getenv("SHOP_ORDER_REFERENCE_PREFIX", "R")
SHOP_ORDER_REFERENCE_START = int(os.getenv("SHOP_ORDER_REFERENCE_START", "100"))
DEFAULT_FROM_EMAIL = os.getenv("DEFAULT_FROM_EMAIL", "shop@example.com")
EMAIL_BACKEND = os.getenv("EMAIL_BACKEND", "django.core.mail.backends.console.EmailBackend")

# ---- Payment gateways ----
PAYMENT_GATEWAYS = {
    "Manual": {"backend": "manual", "use_authorize": True, "offsite": False},
    "Sandbox": {"backend": "sandbox", "use_authorize": False, "offsite": False},
    "SandboxOffsite": {"backend": "sandbox", "use_authorize": False, "offsite": True},
    "SandboxAuthorize": {"backend": "sandbox", "use_authorize": True, "offsite": False},
}
USE_HTTP_ADAPTERS = env_bool("USE_HTTP_ADAPTERS", True)
PAYMENTS_BASE_URL = os.getenv("PAYMENTS_BASE_URL", "http://payments:9002")
HTTP_TIMEOUT_SECS = float(os.getenv("HTTP_TIMEOUT_SECS", "5.0"))
HTTP_RETRY_MAX = int(os.getenv("HTTP_RETRY_MAX", "3"))
HTTP_RETRY_BACKOFF_BASE = float(os.getenv("HTTP_RETRY_BACKOFF_BASE", "0.15"))
HTTP_RETRY_MAX_SLEEP = float(os.getenv("HTTP_RETRY_MAX_SLEEP", "0.5"))
HTTP_CIRCUIT_FAIL_THRESHOLD = int(os.getenv("HTTP_CIRCUIT_FAIL_THRESHOLD", "5"))
HTTP_CIRCUIT_RESET_TIMEOUT = float(os.getenv("HTTP_CIRCUIT_RESET_TIMEOUT", "30.0"))

TRUSTED_PROXIES = [p for p in os.getenv("TRUSTED_PROXIES", "").split(",") if p]

# ---- Logging ----
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "request_context": {"()": "common.logging_filters.RequestContextFilter"},
    },
    "formatters": {
        "json": {
            "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
            "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s %(client_ip)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "filters": ["request_context"],
        },
    },
    "root": {"handlers": ["console"], "level": os.getenv("LOG_LEVEL", "INFO")},
    "loggers": {
        "django": {"handlers": ["console"], "level": "WARNING", "propagate": False},
    },
}
