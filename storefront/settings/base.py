from dotenv import load_dotenv
load_dotenv()

import os
from decimal import Decimal
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent.parent

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-insecure-change-me")
DEBUG = os.getenv("DJANGO_DEBUG", "false").lower() in ("1", "true", "yes")
ALLOWED_HOSTS = [h.strip() for h in os.getenv("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1").split(",") if h.strip()]

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "shop",
    "payments",
    "sellers",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "storefront.urls"
WSGI_APPLICATION = "storefront.wsgi.application"

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

DATABASES = {
    "default": {
        "ENGINE": os.getenv("DB_ENGINE", "django.db.backends.sqlite3"),
        "NAME": os.getenv("DB_NAME", str(BASE_DIR / "db.sqlite3")),
        "USER": os.getenv("DB_USER", ""),
        "PASSWORD": os.getenv("DB_PASSWORD", ""),
        "HOST": os.getenv("DB_HOST", ""),
        "PORT": os.getenv("DB_PORT", ""),
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "Asia/Dhaka"
USE_I18N = True
USE_TZ = True

STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# --- bKash tokenized checkout ---
BKASH_BASE_URL = os.getenv("BKASH_BASE_URL", "https://tokenized.sandbox.bka.sh/v1.2.0-beta")
BKASH_USERNAME = os.getenv("BKASH_CHECKOUT_URL_USER_NAME", "")
BKASH_PASSWORD = os.getenv("BKASH_CHECKOUT_URL_PASSWORD", "")
BKASH_APP_KEY = os.getenv("BKASH_CHECKOUT_URL_APP_KEY", "")
BKASH_APP_SECRET = os.getenv("BKASH_CHECKOUT_URL_APP_SECRET", "")
BKASH_TIMEOUT = float(os.getenv("BKASH_TIMEOUT", "30"))
BKASH_TOKEN_TTL = int(os.getenv("BKASH_TOKEN_TTL", "3600"))  # seconds

# Public origin used to build gateway callback and browser redirect targets
SITE_URL = (os.getenv("SITE_URL") or os.getenv("NEXT_PUBLIC_SERVER_URL") or "http://localhost:8000").rstrip("/")
CHECKOUT_PAGE_PATH = "/checkout"
SELLER_REGISTER_PAGE_PATH = "/register"

CHECKOUT_COD_ADVANCE = Decimal(os.getenv("CHECKOUT_COD_ADVANCE", "200"))
PENDING_PAYMENT_TTL_MINUTES = int(os.getenv("PENDING_PAYMENT_TTL_MINUTES", "60"))
# Fixed seller registration fee; unset means the amount sent by the register page is charged.
SELLER_REGISTRATION_FEE = Decimal(os.environ["SELLER_REGISTRATION_FEE"]) if os.getenv("SELLER_REGISTRATION_FEE") else None

PRODUCTS_API_KEY = os.getenv("PRODUCTS_API_KEY", "")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "root": {"handlers": ["console"], "level": os.getenv("LOG_LEVEL", "INFO")},
    "loggers": {
        "django": {"handlers": ["console"], "level": "WARNING", "propagate": False},
    },
}
