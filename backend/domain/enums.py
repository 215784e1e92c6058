"""
Domain enums for the order lifecycle.

OrderStatus is the single canonical status type. Its integer value is what
gets stored and ordered on; its label is what gets displayed. Both are
converted at the boundary through OrderStatus.parse().
"""

from enum import Enum, IntEnum


class OrderStatus(IntEnum):
    PENDING = 1
    PAID = 2
    PROCESSING = 3
    COMPLETED = 4
    CANCELLED = 5

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, value) -> "OrderStatus":
        """Accept an OrderStatus, its integer value or its label."""
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            raise ValueError(f"Invalid order status: {value!r}")
        if isinstance(value, int):
            return cls(value)
        if isinstance(value, str):
            text = value.strip()
            if text.isdigit():
                return cls(int(text))
            try:
                return cls[text.upper()]
            except KeyError:
                pass
        raise ValueError(f"Invalid order status: {value!r}")

    def __str__(self) -> str:
        return self.label


class OperatorType(str, Enum):
    CUSTOMER = "customer"
    MERCHANT = "merchant"
    SYSTEM = "system"
    ADMIN = "admin"


class ProcessingTimeoutAction(str, Enum):
    """What the scanner does with an order stuck in Processing."""
    CANCEL = "cancel"
    COMPLETE = "complete"
    NOTIFY = "notify"  # escalate only, no transition
