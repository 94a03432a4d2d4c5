"""
Tracking number format: DEL-YYYYMMDD-NNNN with a pseudo-random 4-digit suffix.
"""

import random
import re
from datetime import datetime, timezone
from typing import Optional

TRACKING_NUMBER_PATTERN = re.compile(r"^DEL-\d{8}-\d{4}$")


def generate_tracking_number(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"DEL-{now:%Y%m%d}-{random.randint(1000, 9999)}"
