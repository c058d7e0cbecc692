"""Remaining Apify balance expressed as credits (1 USD = 100 credits)."""

import logging
import math
import re
from typing import Any, Dict

from instalens.scraping.apify_client import ApifyClient

logger = logging.getLogger(__name__)

BALANCE_FIELDS = (
    "usdBalance",
    "balance",
    "accountBalance",
    "monthlyUsageLimit",
    "usdMonthlyUsageLimit",
)
REMAINING_FIELDS = ("remainingUsageLimit", "usdRemainingUsageLimit")


def to_number(value: Any) -> float:
    """Numbers pass through; strings like "$10.50" are stripped to 10.5."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        cleaned = re.sub(r"[^0-9.]", "", value)
        try:
            return float(cleaned)
        except ValueError:
            return 0.0
    return 0.0


def _first_present(data: Dict[str, Any], fields) -> Any:
    for field in fields:
        if data.get(field) is not None:
            return data[field]
    return None


def balance_from_limits(limits: Dict[str, Any]) -> float:
    maximum = to_number((limits.get("limits") or {}).get("maxMonthlyUsageUsd"))
    used = to_number((limits.get("current") or {}).get("monthlyUsageUsd"))
    return max(0.0, maximum - used)


async def get_credits(client: ApifyClient) -> int:
    """Raises ApifyError when the account cannot be read."""
    user = await client.get_user()
    balance = to_number(_first_present(user, BALANCE_FIELDS))

    if balance <= 0:
        balance = to_number(_first_present(user, REMAINING_FIELDS))
    if balance <= 0:
        balance = balance_from_limits(await client.get_limits())

    credits = math.floor(balance * 100)
    logger.info("Calculated %d credits from balance %.2f", credits, balance)
    return credits
