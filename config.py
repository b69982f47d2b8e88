import os
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()


def _bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
PORT = int(os.getenv("PORT", "8000"))

# Database
DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "storefront")
DATABASE_TRANSACTIONS = _bool("DATABASE_TRANSACTIONS", "true")

# Auth
JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_ALGORITHM = "HS256"
COOKIE_NAME = "x-auth-cookie"
DEV_TOKEN_TTL = timedelta(hours=1)
OAUTH_TOKEN_TTL = timedelta(days=15)

CLIENT_URL = os.getenv("CLIENT_URL", "http://localhost:5173")
BASE_URL = os.getenv("BASE_URL", "http://localhost:8000")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", CLIENT_URL).split(",") if o.strip()]

GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET", "")

# Image CDN
CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME", "")
CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY", "")
CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET", "")
MAX_IMAGE_SIZE = 10 * 1024 * 1024
PRODUCT_IMAGE_LIMIT = 4
CAROUSEL_IMAGE_LIMIT = 6
ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/svg+xml", "image/gif")

# Mail
RESEND_API_KEY = os.getenv("RESEND_API_KEY", "")
MAIL_FROM = os.getenv("MAIL_FROM", "Storefront <orders@example.com>")
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "")

# Business rules
SHIPPING_FEE = float(os.getenv("SHIPPING_FEE", "100"))
DISCOUNTED_PROVINCE = os.getenv("DISCOUNTED_PROVINCE", "Metro Manila")
DISCOUNTED_SHIPPING_FEE = float(os.getenv("DISCOUNTED_SHIPPING_FEE", "50"))
CATEGORY_MENU_THRESHOLD = 4

# Scheduled sweep
AUTO_COMPLETE_DAYS = int(os.getenv("AUTO_COMPLETE_DAYS", "7"))
SWEEP_INTERVAL_SECONDS = int(os.getenv("SWEEP_INTERVAL_SECONDS", "3600"))


def is_production() -> bool:
    return APP_ENV == "production"
