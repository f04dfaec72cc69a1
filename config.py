import os
import secrets

ENVIRONMENT = os.getenv("ENVIRONMENT") or os.getenv("NODE_ENV", "development")
IS_PRODUCTION = ENVIRONMENT == "production"
PORT = int(os.getenv("PORT", 3000))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CLIENT_URL = os.getenv("CLIENT_URL")
ALLOWED_ORIGIN = CLIENT_URL if IS_PRODUCTION else "http://localhost:3000"

# Sessions
SESSION_SECRET = os.getenv("SESSION_SECRET")
if not SESSION_SECRET:
    if IS_PRODUCTION:
        raise RuntimeError("SESSION_SECRET must be set in production")
    SESSION_SECRET = secrets.token_hex(32)
SESSION_NAME = os.getenv("SESSION_NAME", "sid")
COOKIE_DOMAIN = os.getenv("COOKIE_DOMAIN") or None
SESSION_TTL_SECONDS = int(os.getenv("SESSION_TTL_SECONDS", 60 * 60 * 24))  # 1 day

# Database
DATABASE_URL = os.getenv("DATABASE_URL") or os.getenv("MONGODB_URI")
DATABASE_NAME = os.getenv("DATABASE_NAME", "photography")

# Admin
ADMIN_USERNAME = os.getenv("ADMIN_USERNAME")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")

# Mail relay
EMAIL_HOST = os.getenv("EMAIL_HOST")
EMAIL_PORT = int(os.getenv("EMAIL_PORT", 587))
EMAIL_SECURE = os.getenv("EMAIL_SECURE", "false").lower() == "true"
EMAIL_USER = os.getenv("EMAIL_USER")
EMAIL_PASS = os.getenv("EMAIL_PASS")
BUSINESS_NAME = os.getenv("BUSINESS_NAME", "Ami Photography")

# Limits
RATE_LIMIT_MAX = int(os.getenv("RATE_LIMIT_MAX", 200))
RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", 15 * 60))
RATE_LIMIT_EXEMPT = ("/api/admin/health",)
MAX_BODY_BYTES = int(os.getenv("MAX_BODY_BYTES", 10 * 1024 * 1024))

# Behaviour toggles
MARK_READ_ON_VIEW = os.getenv("MARK_READ_ON_VIEW", "true").lower() == "true"
SEED_SAMPLE_DATA = os.getenv("SEED_SAMPLE_DATA", "false").lower() == "true"
