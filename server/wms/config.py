import logging
import os
from decimal import Decimal


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+pysqlite:///./wms.db")

LOCK_TIMEOUT_MS = int(os.getenv("WMS_LOCK_TIMEOUT_MS", "5000"))

SECRET_KEY = os.getenv("WMS_SECRET_KEY", "wms-dev-secret")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("WMS_ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 12)))

# Warehouse fee tiers: price <= T1 -> R1, T1 < price <= T2 -> R2, price > T2 -> R3.
FEE_TIER1_THRESHOLD = Decimal(os.getenv("WMS_FEE_TIER1_THRESHOLD", "1000000"))
FEE_TIER2_THRESHOLD = Decimal(os.getenv("WMS_FEE_TIER2_THRESHOLD", "10000000"))
FEE_TIER1_RATE = Decimal(os.getenv("WMS_FEE_TIER1_RATE", "0.03"))
FEE_TIER2_RATE = Decimal(os.getenv("WMS_FEE_TIER2_RATE", "0.02"))
FEE_TIER3_RATE = Decimal(os.getenv("WMS_FEE_TIER3_RATE", "0.01"))

LOG_LEVEL = os.getenv("WMS_LOG_LEVEL", "INFO").upper()


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=level or LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
