import os
from typing import List

from dotenv import load_dotenv

load_dotenv()

DEFAULT_DELIVERY_SLOTS = "10:30,12:45,15:30,22:00"


def delivery_slots() -> List[str]:
    raw = os.getenv("DELIVERY_SLOTS", DEFAULT_DELIVERY_SLOTS)
    return [slot.strip() for slot in raw.split(",") if slot.strip()]


def secret_key() -> str:
    return os.getenv("SECRET_KEY", "supersecretkey")


def access_token_expire_minutes() -> int:
    return int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 7 * 24 * 60))
