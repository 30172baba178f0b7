from typing import Dict, Optional

from slotcast.services.interfaces.price_oracle import PriceOracle


class StaticPriceOracle(PriceOracle):
    """Serves prices set by hand; unknown symbols are unavailable."""

    def __init__(self, prices: Optional[Dict[str, float]] = None):
        self._prices: Dict[str, float] = dict(prices or {})

    def set_price(self, asset_symbol: str, price: Optional[float]) -> None:
        if price is None:
            self._prices.pop(asset_symbol, None)
        else:
            self._prices[asset_symbol] = price

    def get_price(self, asset_symbol: str) -> Optional[float]:
        return self._prices.get(asset_symbol)
