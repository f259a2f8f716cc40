"""
Market Registry
Maps token IDs to Gamma market metadata and CLOB market ids, with TTL caching
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List, Awaitable, Callable

from config.copytrade_settings import MARKET_TTL_SECONDS, MARKET_NEGATIVE_TTL_SECONDS
from core.cache import TtlCache, MISSING
from net.http_client import GammaClient, GammaRequestError

logger = logging.getLogger(__name__)


@dataclass
class GammaMarket:
    """Normalized Gamma market."""
    id: str
    slug: Optional[str] = None
    question: Optional[str] = None
    condition_id: Optional[str] = None
    closed: Optional[bool] = None
    active: Optional[bool] = None
    end_date: Optional[str] = None
    outcomes: List[str] = field(default_factory=list)
    outcome_prices: List[float] = field(default_factory=list)
    clob_token_ids: List[str] = field(default_factory=list)
    volume: Optional[float] = None
    liquidity: Optional[float] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    def outcome_for_token(self, token_id: str) -> Optional[str]:
        """Outcome label (e.g. "Yes") of a CLOB token, if known."""
        try:
            index = self.clob_token_ids.index(str(token_id))
        except ValueError:
            return None
        return self.outcomes[index] if index < len(self.outcomes) else None

    @property
    def label(self) -> str:
        name = self.question or self.slug or self.id
        return f"{name} (closed)" if self.closed else name


@dataclass(frozen=True)
class TokenInfo:
    """CLOB book lookup result."""
    token_id: str
    market_id: Optional[str] = None
    asset_id: Optional[str] = None


def _to_list(value: Any) -> List[Any]:
    # Gamma returns these as JSON-encoded strings: '["Yes", "No"]'
    if value is None or value == "":
        return []
    if isinstance(value, list):
        return [v for v in value if v not in (None, "")]
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except ValueError:
            return [v.strip() for v in value.split(",") if v.strip()]
        if isinstance(parsed, list):
            return [v for v in parsed if v not in (None, "")]
        return [parsed]
    return [value]


def _to_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def normalize_market(raw: Dict[str, Any]) -> GammaMarket:
    """Convert a raw Gamma market dict into a GammaMarket."""
    prices = [_to_float(p) for p in _to_list(raw.get("outcomePrices"))]
    return GammaMarket(
        id=str(raw.get("id", "")),
        slug=raw.get("slug") or None,
        question=raw.get("question") or None,
        condition_id=raw.get("conditionId") or None,
        closed=raw.get("closed"),
        active=raw.get("active"),
        end_date=raw.get("endDate") or None,
        outcomes=[str(o) for o in _to_list(raw.get("outcomes"))],
        outcome_prices=[p for p in prices if p is not None],
        clob_token_ids=[str(t) for t in _to_list(raw.get("clobTokenIds"))],
        volume=_to_float(raw.get("volumeNum", raw.get("volume"))),
        liquidity=_to_float(raw.get("liquidityNum", raw.get("liquidity"))),
        raw=raw,
    )


class MarketRegistry:
    """
    Resolves Gamma markets by id, slug or CLOB token id.

    Found markets are cached for `ttl` seconds under every key they can be
    looked up by. Misses and failures are cached as None for the shorter
    `negative_ttl` so a bad token is not re-fetched on every event.
    """

    def __init__(
        self,
        client: GammaClient,
        ttl: float = MARKET_TTL_SECONDS,
        negative_ttl: float = MARKET_NEGATIVE_TTL_SECONDS,
        cache: Optional[TtlCache] = None,
    ):
        self.client = client
        self.ttl = ttl
        self.negative_ttl = negative_ttl
        self.cache: TtlCache = cache or TtlCache()
        self.fetches = 0
        self.errors = 0

    @staticmethod
    def cache_key(kind: str, value: Any) -> str:
        return f"{kind}:{value}"

    def get_cached(self, key: str) -> Any:
        """Cached market, None for a cached miss, MISSING if absent."""
        return self.cache.get(key, MISSING)

    def clear(self) -> None:
        self.cache.clear()

    def _index(self, market: GammaMarket) -> None:
        self.cache.set(self.cache_key("id", market.id), market, self.ttl)
        if market.slug:
            self.cache.set(self.cache_key("slug", market.slug), market, self.ttl)
        for token_id in market.clob_token_ids:
            self.cache.set(self.cache_key("token", token_id), market, self.ttl)

    async def _resolve(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[Optional[GammaMarket]]],
    ) -> Optional[GammaMarket]:
        async def load() -> Optional[GammaMarket]:
            self.fetches += 1
            try:
                market = await fetcher()
            except (GammaRequestError, ValueError, TypeError, AttributeError) as e:
                self.errors += 1
                logger.debug(f"Gamma resolve error for {key}: {e}")
                return None
            if market is not None:
                self._index(market)
            return market

        return await self.cache.get_or_load(key, load, self.ttl, self.negative_ttl)

    async def resolve_by_id(self, market_id: Any) -> Optional[GammaMarket]:
        async def fetch() -> Optional[GammaMarket]:
            return normalize_market(await self.client.fetch_json(f"/markets/{market_id}"))

        return await self._resolve(self.cache_key("id", market_id), fetch)

    async def resolve_by_slug(self, slug: str) -> Optional[GammaMarket]:
        async def fetch() -> Optional[GammaMarket]:
            return normalize_market(await self.client.fetch_json(f"/markets/slug/{slug}"))

        return await self._resolve(self.cache_key("slug", slug), fetch)

    async def resolve_by_token_id(self, token_id: str) -> Optional[GammaMarket]:
        token_id = str(token_id)

        async def fetch() -> Optional[GammaMarket]:
            data = await self.client.fetch_json(
                "/markets", {"clob_token_ids": [token_id], "limit": 1}
            )
            markets = data if isinstance(data, list) else (data or {}).get("data", [])
            if not markets:
                return None
            market = normalize_market(markets[0])
            if token_id not in market.clob_token_ids:
                market.clob_token_ids.append(token_id)
            return market

        return await self._resolve(self.cache_key("token", token_id), fetch)


class TokenResolver:
    """
    Maps a CLOB token id to its market via GET /book?token_id=.
    """

    def __init__(
        self,
        client: GammaClient,
        ttl: float = MARKET_TTL_SECONDS,
        negative_ttl: float = MARKET_NEGATIVE_TTL_SECONDS,
        cache: Optional[TtlCache] = None,
    ):
        self.client = client
        self.ttl = ttl
        self.negative_ttl = negative_ttl
        self.cache: TtlCache = cache or TtlCache()

    def get_cached(self, token_id: str) -> Any:
        return self.cache.get(str(token_id), MISSING)

    async def resolve(self, token_id: str) -> Optional[TokenInfo]:
        token_id = str(token_id)

        async def load() -> Optional[TokenInfo]:
            try:
                data = await self.client.fetch_json("/book", {"token_id": token_id})
            except GammaRequestError as e:
                logger.debug(f"Token resolver fetch failed for {token_id}: {e}")
                return None
            if not isinstance(data, dict):
                return None
            return TokenInfo(
                token_id=token_id,
                market_id=data.get("market"),
                asset_id=data.get("asset_id"),
            )

        return await self.cache.get_or_load(token_id, load, self.ttl, self.negative_ttl)
