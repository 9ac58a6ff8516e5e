from datetime import datetime

from beanie import Document
from pydantic import Field

SUBSCRIPTION_TIERS = ("none", "vip")


class UserAccount(Document):
    """Profile and coin balance; _id is the identity provider uid."""
    id: str
    email: str = ""
    username: str = "New User"
    profile_picture_url: str | None = None
    subscription_tier: str = "none"  # "none" | "vip"
    coins: int = 0  # only changed through services.ledger
    is_live: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "we_chat_users"
        indexes = [[("is_live", 1)]]
