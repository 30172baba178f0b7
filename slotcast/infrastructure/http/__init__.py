from .http_price_oracle import HttpPriceOracle
