# app/core/config.py
import os
from dotenv import load_dotenv

load_dotenv()

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

# ==========================================
# 1. DATABASE
# ==========================================
DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise ValueError("DATABASE_URL environment variable is not set")

# ==========================================
# 2. SECURITY (JWT)
# ==========================================
SECRET_KEY = os.getenv("SECRET_KEY", "super-secret-key-change-this")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24 * 30)))  # 30 days

# ==========================================
# 3. HTTP
# ==========================================
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "CORS_ORIGINS",
        "http://localhost:5173,http://localhost:3000,http://127.0.0.1:5173,http://127.0.0.1:3000",
    ).split(",")
    if origin.strip()
]

# ==========================================
# 4. FILES & LOGS
# ==========================================
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
LOG_DIR = os.getenv("LOG_DIR", "logs")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# ==========================================
# 5. OUTBOUND EMAIL
# ==========================================
EMAIL_HOST = os.getenv("EMAIL_HOST", "localhost")
EMAIL_PORT = int(os.getenv("EMAIL_PORT", "587"))
EMAIL_USER = os.getenv("EMAIL_USER", "")
EMAIL_PASS = os.getenv("EMAIL_PASS", "")
EMAIL_USE_TLS = os.getenv("EMAIL_USE_TLS", "true").lower() == "true"
EMAIL_FROM_NAME = os.getenv("EMAIL_FROM_NAME", "System Nieruchomości")

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "")
CONTACT_EMAIL = os.getenv("CONTACT_EMAIL") or ADMIN_EMAIL
COMPANY_PHONE = os.getenv("COMPANY_PHONE", "+48 123 456 789")

# ==========================================
# 6. FIRST ADMIN (create_admin.py)
# ==========================================
FIRST_ADMIN_EMAIL = os.getenv("FIRST_ADMIN_EMAIL", "admin@example.com")
FIRST_ADMIN_PASSWORD = os.getenv("FIRST_ADMIN_PASSWORD", "changethis")
