import os

from dotenv import load_dotenv

load_dotenv()


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


# Database
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "snapshop")

# Security/JWT
JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_ALG = "HS256"
JWT_EXPIRE_DAYS = _int_env("JWT_EXPIRE_DAYS", 7)
RESET_TOKEN_MINUTES = _int_env("RESET_TOKEN_MINUTES", 15)
RESET_CODE_MINUTES = _int_env("RESET_CODE_MINUTES", 10)
RESET_CODE_LENGTH = 6
PASSWORD_MIN_LENGTH = _int_env("PASSWORD_MIN_LENGTH", 8)
PASSWORD_REQUIRE_CLASSES = _bool_env("PASSWORD_REQUIRE_CLASSES", True)

# Admin account provisioned at startup
ADMIN_EMAIL = (os.getenv("ADMIN_EMAIL") or "").strip().lower()
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD") or ""
ADMIN_NAME = (os.getenv("ADMIN_NAME") or "Store Admin").strip()

# CORS
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173").strip()


def allowed_origins():
    origins = [
        FRONTEND_URL,
        "http://localhost:5173",
        "http://localhost:5174",
        "http://localhost:3000",
    ]
    extra = os.getenv("CORS_ALLOWED_ORIGINS", "")
    for origin in extra.split(","):
        trimmed = origin.strip()
        if trimmed:
            origins.append(trimmed)
    return [o for o in dict.fromkeys(origins) if o]


# Outbound email (Resend)
RESEND_API_KEY = (os.getenv("RESEND_API_KEY") or "").strip()
EMAIL_FROM = os.getenv("EMAIL_FROM", "SnapShop <onboarding@resend.dev>")

# Image hosting (ImgBB)
IMGBB_API_KEY = (os.getenv("IMGBB_API_KEY") or "").strip()
IMGBB_API_URL = "https://api.imgbb.com/1/upload"
IMGBB_TIMEOUT = _int_env("IMGBB_TIMEOUT", 10)

# Runtime
APP_ENV = os.getenv("APP_ENV", "development").strip().lower()
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = _int_env("PORT", 8000)


def is_production() -> bool:
    return APP_ENV == "production"
