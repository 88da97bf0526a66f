"""
Order token generation.

Tokens look like ``PREFIX_DDMMYY_SEQ``: the shop name stripped to alphanumerics,
upper-cased and cut to five characters, today's date, and a per-shop per-day
sequence padded to three digits. The sequence is derived by scanning the
existing orders, so callers must hold the orders collection lock between
generating a token and writing the order that carries it.
"""
import logging
import re
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from bson import ObjectId

from clock import ddmmyy, local_now

logger = logging.getLogger(__name__)

PREFIX_LENGTH = 5
SEQUENCE_WIDTH = 3


def shop_prefix(shop_name: str) -> str:
    return re.sub(r"[^A-Za-z0-9]", "", shop_name or "").upper()[:PREFIX_LENGTH]


def fallback_token(now: datetime) -> str:
    return f"ORD_{ddmmyy(now)}_{str(ObjectId()).upper()}"


def generate_token(shop_name: str, existing_orders: Iterable[Dict[str, Any]], now: Optional[datetime] = None) -> str:
    now = now or local_now()
    prefix = shop_prefix(shop_name)
    if not prefix:
        token = fallback_token(now)
        logger.warning("Shop name %r yields no token prefix, using %s", shop_name, token)
        return token

    day_prefix = f"{prefix}_{ddmmyy(now)}_"
    max_seq = 0
    try:
        for order in existing_orders:
            token = order.get("token_number") or ""
            if not token.startswith(day_prefix):
                continue
            seq = token[len(day_prefix):]
            if not seq.isdigit():
                logger.warning("Ignoring malformed token %s", token)
                continue
            max_seq = max(max_seq, int(seq))
    except (AttributeError, TypeError, ValueError):
        token = fallback_token(now)
        logger.exception("Could not derive sequence for %s, using %s", day_prefix, token)
        return token

    return f"{day_prefix}{max_seq + 1:0{SEQUENCE_WIDTH}d}"
