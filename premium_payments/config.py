import os
import logging
from pathlib import Path
from dotenv import load_dotenv

# Force-load .env (Windows-safe, reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

logger = logging.getLogger(__name__)

CLIENT_URL = os.getenv("CLIENT_URL", "http://localhost:5173")

PREMIUM_PRICE_AMOUNT = int(os.getenv("PREMIUM_PRICE_AMOUNT", "150000"))  # 1500 BDT in subunits
PREMIUM_CURRENCY = os.getenv("PREMIUM_CURRENCY", "bdt")
PREMIUM_PRODUCT_NAME = os.getenv(
    "PREMIUM_PRODUCT_NAME", "Digital Life Lessons Premium - Lifetime"
)


def configure_logging():
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not os.getenv("STRIPE_SECRET_KEY"):
        logger.warning("STRIPE_SECRET_KEY is not set")
    if not os.getenv("CLIENT_URL"):
        logger.warning("CLIENT_URL is not set, using %s", CLIENT_URL)
