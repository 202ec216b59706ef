import os
from decimal import Decimal
from dotenv import load_dotenv

# Load environment variables from the .env file
load_dotenv()

MODE = os.getenv("MODE", "DEV").strip()
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Database settings
DATABASE_URL_ASYNC = os.getenv("DATABASE_URL_ASYNC", "sqlite+aiosqlite:///./driver.db")
DATABASE_ECHO = os.getenv("DATABASE_ECHO", "false").lower() == "true"

# Tokens
ALGORITHM = os.getenv("ALGORITHM", "HS256")
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")  # should be kept secret
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24))

# Public address used to build referral and webhook links
BASE_URL = os.getenv("BASE_URL", "http://localhost:8000").rstrip("/")

# PIX provider
PUSHINPAY_TOKEN = os.getenv("PUSHINPAY_TOKEN", "")
PUSHINPAY_API_URL = os.getenv("PUSHINPAY_API_URL", "https://api.pushinpay.com.br/api").rstrip("/")
PUSHINPAY_TIMEOUT = float(os.getenv("PUSHINPAY_TIMEOUT", 10))

# Business rules
SUBSCRIPTION_PRICE = Decimal(os.getenv("SUBSCRIPTION_PRICE", "29.90"))
SUBSCRIPTION_DAYS = int(os.getenv("SUBSCRIPTION_DAYS", 90))
COMMISSION_RATE = Decimal(os.getenv("COMMISSION_RATE", "0.45"))
MIN_WITHDRAWAL = Decimal(os.getenv("MIN_WITHDRAWAL", "10.00"))
TRIAL_HOURS = int(os.getenv("TRIAL_HOURS", 48))
NETWORK_MAX_DEPTH = int(os.getenv("NETWORK_MAX_DEPTH", 5))

origins = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:8080,http://localhost:5173").split(",")
    if origin.strip()
]
