"""Coin packages and call pricing, versioned so prices can change without a deploy."""

import json
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, PositiveInt

from streamcoin.core.config import get_settings
from streamcoin.core.exceptions import InvalidPackageError


class CoinPackage(BaseModel):
    coins: PositiveInt
    price: float = Field(gt=0)


class PricingConfig(BaseModel):
    version: str = "2024-01"
    currency: str = "USD"
    call_cost_per_minute: PositiveInt = 50
    packages: dict[str, CoinPackage] = Field(
        default_factory=lambda: {
            "pack1": CoinPackage(coins=100, price=5.00),
            "pack2": CoinPackage(coins=550, price=20.00),
            "pack3": CoinPackage(coins=1200, price=40.00),
        }
    )

    def package(self, package_id: str) -> CoinPackage:
        pkg = self.packages.get(package_id)
        if pkg is None:
            raise InvalidPackageError(f"Invalid package selected: {package_id}")
        return pkg


def load_pricing(path: str | None = None) -> PricingConfig:
    """Read a pricing JSON file; built-in catalog when no path is given."""
    if not path:
        return PricingConfig()
    return PricingConfig.model_validate(json.loads(Path(path).read_text(encoding="utf-8")))


@lru_cache
def get_pricing() -> PricingConfig:
    return load_pricing(get_settings().pricing_file)
