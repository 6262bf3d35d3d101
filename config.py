import os

SECRET_KEY = os.getenv("SECRET_KEY", "bigboy-dev-secret-change-in-production")
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///database.db")
CORS_ORIGIN = os.getenv("CORS_ORIGIN", "*")

# Bearer tokens
TOKEN_MAX_AGE = int(os.getenv("TOKEN_MAX_AGE", 7 * 24 * 60 * 60))

# Operator login (admin dashboard)
SHOP_USERNAME = os.getenv("SHOP_USERNAME", "shop@bigboy.local")
SHOP_PASSWORD = os.getenv("SHOP_PASSWORD", "shop-admin")

# Order policy
TAX_RATE = os.getenv("TAX_RATE", "0.06")
POINTS_PER_DOLLAR = int(os.getenv("POINTS_PER_DOLLAR", 10))
POINTS_PER_DISCOUNT_DOLLAR = int(os.getenv("POINTS_PER_DISCOUNT_DOLLAR", 100))
BASE_PREP_MINUTES = int(os.getenv("BASE_PREP_MINUTES", 15))
PREP_MINUTES_PER_ITEM = int(os.getenv("PREP_MINUTES_PER_ITEM", 2))
MAX_EXTRA_PREP_MINUTES = int(os.getenv("MAX_EXTRA_PREP_MINUTES", 15))

# "ignore" | "reject"
UNKNOWN_MODIFIER_POLICY = os.getenv("UNKNOWN_MODIFIER_POLICY", "ignore")
# "skip" | "reject"
INSUFFICIENT_POINTS_POLICY = os.getenv("INSUFFICIENT_POINTS_POLICY", "skip")
CLAMP_CANCELLATION_REVERSAL = os.getenv("CLAMP_CANCELLATION_REVERSAL", "false").lower() in ("1", "true", "yes")

# Loyalty
WELCOME_POINTS = int(os.getenv("WELCOME_POINTS", 100))
REWARD_EXPIRY_DAYS = int(os.getenv("REWARD_EXPIRY_DAYS", 30))
