# /basegas/adapters/price_oracle.py
import asyncio
from decimal import Decimal
from typing import Optional

import aiohttp

from basegas.core.config import settings
from basegas.core.logger import get_logger

log = get_logger(__name__)


class PriceOracle:
    """ETH/USD spot price from the CoinGecko simple price endpoint."""
    def __init__(self, api_url: Optional[str] = None, request_timeout: float = 10.0):
        self.api_url = api_url or settings.PRICE_API_URL
        self.timeout = aiohttp.ClientTimeout(total=request_timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    async def get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def _coingecko_price(self, asset: str) -> Decimal:
        session = await self.get_session()
        params = {"ids": asset, "vs_currencies": "usd"}
        async with session.get(self.api_url, params=params) as resp:
            resp.raise_for_status()
            data = await resp.json()
            return Decimal(str(data[asset]["usd"]))

    async def get_eth_usd(self) -> Optional[Decimal]:
        """Returns None when the price service is unavailable."""
        try:
            return await self._coingecko_price("ethereum")
        except (aiohttp.ClientError, asyncio.TimeoutError, KeyError, TypeError, ValueError) as e:
            log.warning("ETH_PRICE_UNAVAILABLE", error=str(e))
            return None

    async def close(self):
        if self._session is not None and not self._session.closed:
            await self._session.close()
