"""
Application settings

Every value can be overridden through the environment (or a .env file).
"""

import os
from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

JWT_SECRET = os.getenv("JWT_SECRET", "devsecret")
JWT_ALGO = "HS256"
JWT_EXPIRE_DAYS = int(os.getenv("JWT_EXPIRE_DAYS", 7))

# Unset means every payment webhook is rejected
PAYMENT_WEBHOOK_SECRET = os.getenv("PAYMENT_WEBHOOK_SECRET")

# Pricing (18% GST, free shipping above the threshold)
TAX_RATE = Decimal(os.getenv("TAX_RATE", "0.18"))
FREE_SHIPPING_THRESHOLD = float(os.getenv("FREE_SHIPPING_THRESHOLD", 500))
SHIPPING_FEE = float(os.getenv("SHIPPING_FEE", 50))

MAX_CART_QUANTITY = int(os.getenv("MAX_CART_QUANTITY", 10))
DELIVERY_ESTIMATE_DAYS = int(os.getenv("DELIVERY_ESTIMATE_DAYS", 5))

DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", 12))
MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", 100))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
PORT = int(os.getenv("PORT", 8000))
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
