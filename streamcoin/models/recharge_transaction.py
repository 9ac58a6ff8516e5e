from datetime import datetime

from beanie import Document
from pydantic import Field

PENDING = "PENDING"
COMPLETED = "COMPLETED"
FAILED = "FAILED"
TERMINAL_STATUSES = (COMPLETED, FAILED)


class RechargeTransaction(Document):
    """One payment attempt; _id is the merchant reference sent to Pesapal as the order id."""
    id: str
    user_id: str
    package_id: str
    amount: float
    currency: str
    coins: int
    status: str = PENDING  # PENDING -> COMPLETED | FAILED, both terminal
    order_tracking_id: str | None = None
    gateway_status: str | None = None
    failure_reason: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    processed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    class Settings:
        name = "recharge_transactions"
        indexes = [
            [("user_id", 1), ("created_at", -1)],
            [("status", 1), ("created_at", 1)],
            [("order_tracking_id", 1)],
        ]
