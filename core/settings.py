"""
Django settings for Tour Checkout API.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "django-insecure-change-in-production")

DEBUG = os.getenv("DEBUG", "true").lower() == "true"

ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",")

# Application definition
INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "corsheaders",
    "apps.payments",
]

MIDDLEWARE = [
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "core.urls"

WSGI_APPLICATION = "core.wsgi.application"
ASGI_APPLICATION = "core.asgi.application"

# Database - nothing is persisted, payment views are projections of upstream records
DATABASES = {
    "default": {
        "ENGINE": os.getenv("DB_ENGINE", "django.db.backends.sqlite3"),
        "NAME": os.getenv("DB_DATABASE", str(BASE_DIR / "db.sqlite3")),
        "USER": os.getenv("DB_USERNAME", ""),
        "PASSWORD": os.getenv("DB_PASSWORD", ""),
        "HOST": os.getenv("DB_HOST", ""),
        "PORT": os.getenv("DB_PORT", ""),
    }
}

# CORS
CORS_ALLOWED_ORIGINS = os.getenv(
    "CORS_ORIGINS", "http://localhost:3000,http://localhost:5173"
).split(",")
CORS_ALLOW_CREDENTIALS = True

# Booking API (marketplace backend)
BOOKING_API_BASE_URL = os.getenv("BOOKING_API_BASE_URL", "http://localhost:8080")
BOOKING_API_TIMEOUT = float(os.getenv("BOOKING_API_TIMEOUT", "10"))

# Payment confirmation polling
PAYMENT_POLL_INTERVAL = float(os.getenv("PAYMENT_POLL_INTERVAL", "4"))
PAYMENT_POLL_TIMEOUT = float(os.getenv("PAYMENT_POLL_TIMEOUT", "120"))
PAYMENT_DEFAULT_CURRENCY = os.getenv("PAYMENT_DEFAULT_CURRENCY", "VND")

# QR rendering fallback (used when SePay returns no native QR)
QR_RENDER_ENDPOINT = os.getenv("QR_RENDER_ENDPOINT", "https://api.qrserver.com/v1/create-qr-code/")
QR_RENDER_SIZE = os.getenv("QR_RENDER_SIZE", "260x260")

# Internationalization
LANGUAGE_CODE = "vi"
TIME_ZONE = "Asia/Ho_Chi_Minh"
USE_I18N = True
USE_TZ = True

# Default primary key field type
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# Server
SERVER_PORT = int(os.getenv("PORT", "4000"))

# Logging
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {module} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "INFO",
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": os.getenv("DJANGO_LOG_LEVEL", "INFO"),
            "propagate": False,
        },
        # Poller and booking API debug logging
        "apps.payments": {
            "handlers": ["console"],
            "level": os.getenv("PAYMENTS_LOG_LEVEL", "DEBUG"),
            "propagate": False,
        },
    },
}
