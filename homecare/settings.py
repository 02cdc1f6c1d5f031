import os
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

# Load .env from project root
load_dotenv(dotenv_path=BASE_DIR / ".env")

SECRET_KEY = os.getenv("SECRET_KEY", "insecure-dev-key-change-in-production")
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",") if h.strip()]

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "rest_framework_simplejwt",
    "accounts",
    "evv",
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

ROOT_URLCONF = "homecare.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "homecare.wsgi.application"

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

AUTH_USER_MODEL = "accounts.User"

AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
]

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (
        "rest_framework_simplejwt.authentication.JWTAuthentication",
        "rest_framework.authentication.SessionAuthentication",
    ),
    "DEFAULT_PERMISSION_CLASSES": ("rest_framework.permissions.IsAuthenticated",),
}

SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(minutes=int(os.getenv("JWT_ACCESS_MINUTES", "60"))),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=int(os.getenv("JWT_REFRESH_DAYS", "7"))),
}

# -----------------------
# EVV POLICY
# -----------------------
EVV_GEOFENCE_RADIUS_MILES = float(os.getenv("EVV_GEOFENCE_RADIUS_MILES", "0.5"))
EVV_CLOCK_IN_WINDOW_HOURS = float(os.getenv("EVV_CLOCK_IN_WINDOW_HOURS", "2"))
EVV_LOCATION_TIMEOUT_SECONDS = float(os.getenv("EVV_LOCATION_TIMEOUT_SECONDS", "10"))
EVV_DEFAULT_UNITS = os.getenv("EVV_DEFAULT_UNITS", "1")
EVV_DEFAULT_BILLING_CODE = os.getenv("EVV_DEFAULT_BILLING_CODE", "G0156")  # Home health aide services
EVV_DEFAULT_MODIFIER = os.getenv("EVV_DEFAULT_MODIFIER", "UN")
EVV_LATE_ARRIVAL_TOLERANCE_MINUTES = int(os.getenv("EVV_LATE_ARRIVAL_TOLERANCE_MINUTES", "15"))
EVV_EARLY_DEPARTURE_TOLERANCE_MINUTES = int(os.getenv("EVV_EARLY_DEPARTURE_TOLERANCE_MINUTES", "15"))
EVV_AUTHORIZED_HOURS_TOLERANCE = os.getenv("EVV_AUTHORIZED_HOURS_TOLERANCE", "0.5")

# "lat,lng" used only when a client has no geocoded service address
_fallback = os.getenv("EVV_FALLBACK_CLIENT_LOCATION")
EVV_FALLBACK_CLIENT_LOCATION = (
    tuple(float(part) for part in _fallback.split(",")) if _fallback else None
)

# Notification collaborator
NOTIFICATION_API_BASE = os.getenv("NOTIFICATION_API_BASE")
NOTIFICATION_API_KEY = os.getenv("NOTIFICATION_API_KEY")
NOTIFICATION_TIMEOUT_SECONDS = int(os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "10"))
# Send notices from a background thread; turn off to send them inline after commit
NOTIFICATION_ASYNC = os.getenv("NOTIFICATION_ASYNC", "true").lower() in ("1", "true", "yes")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "standard"},
    },
    "root": {"handlers": ["console"], "level": os.getenv("LOG_LEVEL", "INFO")},
    "loggers": {
        "django.db.backends": {"level": "WARNING"},
    },
}
