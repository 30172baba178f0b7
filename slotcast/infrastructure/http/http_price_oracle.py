import logging
import math

import requests

from slotcast.errors import PriceUnavailable
from slotcast.services.interfaces.price_oracle import PriceOracle

logger = logging.getLogger(__name__)


class HttpPriceOracle(PriceOracle):
    """Reads the latest price from a JSON endpoint.

    ``url_template`` receives the asset symbol, e.g.
    ``https://prices.internal/latest/{symbol}``. The body must carry a numeric
    ``price`` field, or a ``{"price": <int>, "expo": <int>}`` object.
    """

    def __init__(self, url_template: str, timeout: float = 10, session: requests.Session | None = None):
        self.url_template = url_template
        self.timeout = timeout
        self.session = session or requests.Session()

    def get_price(self, asset_symbol: str) -> float | None:
        try:
            return self.fetch_price(asset_symbol)
        except PriceUnavailable as error:
            logger.warning("%s (%s)", error, error.__cause__)
            return None

    def fetch_price(self, asset_symbol: str) -> float:
        url = self.url_template.format(symbol=asset_symbol)
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()

            price = self._parse_price(response.json())
            if not math.isfinite(price) or price <= 0:
                raise ValueError(f"non positive price received: {price}")
        except Exception as error:
            raise PriceUnavailable(asset_symbol) from error

        return price

    @staticmethod
    def _parse_price(root) -> float:
        entry = root["price"]
        if isinstance(entry, dict):
            return int(entry["price"]) * (10 ** int(entry["expo"]))
        return float(entry)
