from abc import ABC, abstractmethod


class PriceOracle(ABC):

    @abstractmethod
    def get_price(self, asset_symbol: str) -> float | None:
        """Latest price for the asset, or None when no usable price is available."""
