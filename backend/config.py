import os
from dotenv import load_dotenv

load_dotenv()

STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")
STRIPE_API_VERSION = os.getenv("STRIPE_API_VERSION", "2024-12-18.acacia")
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "usd")

# half_up | half_even | down, applied only when converting to cents
CURRENCY_ROUNDING = os.getenv("CURRENCY_ROUNDING", "half_up")

DEFAULT_MINIMUM_VIEWS = int(os.getenv("DEFAULT_MINIMUM_VIEWS", "1000"))

SCRAPE_TIMEOUT = float(os.getenv("SCRAPE_TIMEOUT", "15"))
SCRAPE_USER_AGENT = os.getenv(
    "SCRAPE_USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36",
)

YOUTUBE_API_KEY = os.getenv("YOUTUBE_API_KEY", "")

OUTPUT_DIR = os.getenv("OUTPUT_DIR", "/tmp/clipwave_reports")
