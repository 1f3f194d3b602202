"""
Budget domain entity - root container for all financial planning
"""
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

DEFAULT_CURRENCY = "USD"

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def is_valid_currency(code: str) -> bool:
    """Currency code: strictly 3 upper-case latin letters"""
    return bool(_CURRENCY_RE.fullmatch(code or ""))


@dataclass(frozen=True)
class Budget:
    """
    Budget owns accounts, category groups and payees (and transitively
    everything else). Deleting a budget cascades to all of them.
    """
    id: str
    name: str
    currency: str = DEFAULT_CURRENCY
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @staticmethod
    def create(name: str, currency: str = DEFAULT_CURRENCY) -> "Budget":
        """
        Create a new budget with a fresh UUID

        Args:
            name: Budget name
            currency: ISO currency code (USD, EUR, ...)

        Returns:
            Budget entity (not yet persisted)
        """
        now = utcnow()
        return Budget(id=new_id(), name=name, currency=currency, created_at=now, updated_at=now)
