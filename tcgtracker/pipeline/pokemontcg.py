"""
TCG Tracker — pokemontcg.io API Client (External Price Fetcher)

Fetches card records and TCGPlayer market prices from the pokemontcg.io v2
API. Every query is restricted to a fixed allow-list of collectible rarities.

Base URL: https://api.pokemontcg.io/v2/
Pagination: page + pageSize (max 250 per page)
Auth: X-Api-Key header is optional; it only raises rate limits.

Price extraction policy:
    first non-zero `market` value from holofoil → 1stEditionHolofoil →
    reverseHolofoil → normal. No usable variant → Decimal("0").
"""

from __future__ import annotations

import asyncio
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator

from tcgtracker.config import settings

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# API Configuration
# ---------------------------------------------------------------------------
MAX_PAGE_SIZE = 250

# Rarity names exactly as the API spells them.
RARITY_ALLOW_LIST: tuple[str, ...] = (
    "Rare Holo",
    "Rare Holo EX",
    "Rare Holo GX",
    "Rare Holo V",
    "Rare Holo VMAX",
    "Rare Holo VSTAR",
    "Rare Ultra",
    "Rare Rainbow",
    "Rare Secret",
    "Rare Shining",
    "Rare ACE",
    "Rare BREAK",
    "Rare Prime",
    "Rare Prism Star",
    "Amazing Rare",
    "Radiant Rare",
    "Hyper Rare",
    "Illustration Rare",
    "Special Illustration Rare",
    "Double Rare",
    "Shiny Rare",
    "Shiny Ultra Rare",
    "Trainer Gallery Rare Holo",
    "Black White Rare",
    "Rare Shiny GX",
    "Rare Holo Star",
    "Rare Holo LV.X",
    "LEGEND",
    "Promo",
)

# Ordered preference for the canonical price.
PRICE_VARIANT_PREFERENCE: tuple[str, ...] = (
    "holofoil",
    "1stEditionHolofoil",
    "reverseHolofoil",
    "normal",
)


class PokemonTCGError(Exception):
    """Non-success response or transport failure from pokemontcg.io."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


# ---------------------------------------------------------------------------
# Pydantic Response Models
# ---------------------------------------------------------------------------


class VariantPrice(BaseModel):
    """One TCGPlayer price variant. Only `market` drives the canonical price."""
    low: Decimal | None = None
    mid: Decimal | None = None
    high: Decimal | None = None
    market: Decimal | None = None

    @field_validator("low", "mid", "high", "market", mode="before")
    @classmethod
    def parse_decimal(cls, v: Any) -> Decimal | None:
        """Safely convert price values to Decimal. Never use float for money."""
        if v is None or v == "":
            return None
        try:
            return Decimal(str(v))
        except (InvalidOperation, ValueError):
            return None


class TCGPlayerData(BaseModel):
    """TCGPlayer block from pokemontcg.io; prices keyed by variant name."""
    url: str | None = None
    prices: dict[str, VariantPrice] | None = None


class SetInfo(BaseModel):
    """Set metadata from pokemontcg.io."""
    model_config = ConfigDict(extra="ignore")

    id: str | None = Field(default=None, description="Set code (e.g., 'sv1')")
    name: str = Field(..., description="Set name (e.g., 'Scarlet & Violet')")
    releaseDate: str | None = Field(default=None, description="Release date YYYY/MM/DD")


class CardData(BaseModel):
    """A card record as returned by the /cards endpoint."""
    model_config = ConfigDict(extra="ignore")

    id: str | None = Field(default=None, description="Canonical card ID: {set_code}-{card_number}")
    name: str = Field(..., description="Card name")
    number: str = Field(..., description="Card number within set")
    rarity: str | None = Field(default=None)
    set: SetInfo = Field(..., description="Set metadata")
    images: dict[str, str] | None = Field(default=None, description="Card images")
    tcgplayer: TCGPlayerData | None = Field(default=None)

    @property
    def image_url(self) -> str | None:
        """Get the best available image URL."""
        if self.images:
            return self.images.get("large") or self.images.get("small")
        return None

    @property
    def tcgplayer_url(self) -> str | None:
        return self.tcgplayer.url if self.tcgplayer else None


class CardListResponse(BaseModel):
    """Paginated response from pokemontcg.io cards endpoint."""
    data: list[dict[str, Any]] = Field(default_factory=list)
    page: int = Field(default=1)
    pageSize: int = Field(default=MAX_PAGE_SIZE)
    count: int = Field(default=0)
    totalCount: int = Field(default=0)


# ---------------------------------------------------------------------------
# Query + price helpers
# ---------------------------------------------------------------------------


def build_rarity_filter(rarities: tuple[str, ...] = RARITY_ALLOW_LIST) -> str:
    """`(rarity:"A" OR rarity:"B" ...)` clause for the q parameter."""
    return "(" + " OR ".join(f'rarity:"{r}"' for r in rarities) + ")"


def build_search_query(name: str | None = None, set_name: str | None = None) -> str:
    """
    Build the free-text q parameter: optional name and set filters plus the
    rarity allow-list.
    """
    parts: list[str] = []
    if name:
        parts.append(f'name:"{name}"')
    if set_name:
        parts.append(f'set.name:"{set_name}"')
    parts.append(build_rarity_filter())
    return " ".join(parts)


def extract_price(card: CardData) -> Decimal:
    """
    Canonical price for a card record.

    Returns Decimal("0") when no preferred variant has a positive market
    price; callers with a minimum-price filter treat 0 as "no usable price".
    """
    if card.tcgplayer is None or not card.tcgplayer.prices:
        return Decimal("0")

    prices = card.tcgplayer.prices
    for variant in PRICE_VARIANT_PREFERENCE:
        entry = prices.get(variant)
        if entry is None or entry.market is None:
            continue
        if entry.market.is_finite() and entry.market > 0:
            return entry.market
    return Decimal("0")


# ---------------------------------------------------------------------------
# API Client
# ---------------------------------------------------------------------------


class PokemonTCGClient:
    """
    Async client for the pokemontcg.io v2 API.

    Any non-2xx response raises PokemonTCGError once the (by default empty)
    retry budget is spent; the caller decides whether that stops a crawl or
    skips one item.

    Usage:
        async with PokemonTCGClient() as client:
            cards = await client.fetch_page(page=3)
            card = await client.search_card("Charizard ex", "Obsidian Flames")
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        max_retries: int | None = None,
        base_backoff: float | None = None,
    ):
        self._api_key = api_key if api_key is not None else settings.POKEMONTCG_API_KEY
        self._base_url = base_url or settings.POKEMONTCG_BASE_URL
        self._max_retries = (
            max_retries if max_retries is not None else settings.POKEMONTCG_MAX_RETRIES
        )
        self._base_backoff = (
            base_backoff if base_backoff is not None else settings.POKEMONTCG_BASE_BACKOFF_SECONDS
        )
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> PokemonTCGClient:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["X-Api-Key"] = self._api_key
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=settings.POKEMONTCG_TIMEOUT_SECONDS,
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()

    async def _request(
        self,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """GET with optional retry on 429/5xx/transport errors and exponential backoff."""
        assert self._client is not None, "Client not initialized. Use 'async with'."

        last_error: PokemonTCGError | None = None

        for attempt in range(self._max_retries + 1):
            try:
                response = await self._client.get(path, params=params)
                response.raise_for_status()
                try:
                    return response.json()
                except ValueError as e:
                    raise PokemonTCGError("API returned a non-JSON body") from e

            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                logger.error(
                    "pokemontcg_http_error",
                    status_code=status,
                    attempt=attempt + 1,
                    path=path,
                )
                last_error = PokemonTCGError(
                    f"API request failed with status {status}", status_code=status
                )
                if status != 429 and status < 500:
                    raise last_error from e

            except httpx.RequestError as e:
                logger.error(
                    "pokemontcg_request_error",
                    error=str(e),
                    attempt=attempt + 1,
                    path=path,
                )
                last_error = PokemonTCGError(f"API request failed: {e}")

            if attempt < self._max_retries:
                wait_time = self._base_backoff * (2 ** attempt)
                await asyncio.sleep(wait_time)

        assert last_error is not None
        raise last_error

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    async def fetch_page(
        self,
        page: int,
        page_size: int | None = None,
        order_by: str | None = None,
    ) -> CardListResponse:
        """
        Fetch one page of the rarity-filtered catalog.

        Records (`response.data`) are left raw so a single malformed record can be reported
        as a per-item error by the caller instead of failing the whole page.

        Args:
            page: 1-based page number.
            page_size: Records per page (capped at 250).
            order_by: Stable sort key, descending release date by default.

        Returns:
            CardListResponse; `data` is empty when the catalog is exhausted.
        """
        size = min(page_size or settings.CRAWL_PAGE_SIZE, MAX_PAGE_SIZE)
        params = {
            "q": build_search_query(),
            "orderBy": order_by or settings.CRAWL_ORDER_BY,
            "page": page,
            "pageSize": size,
        }

        logger.debug("pokemontcg_fetch_page", page=page, page_size=size)
        data = await self._request("/cards", params=params)
        response = CardListResponse.model_validate(data)

        logger.debug(
            "pokemontcg_fetch_page_complete",
            page=page,
            page_count=len(response.data),
            total=response.totalCount,
        )
        return response

    async def search_card(self, name: str, set_name: str | None = None) -> CardData | None:
        """
        Search a single card by name (and optionally set name).

        Returns:
            The first matching CardData, or None when nothing matches.
        """
        logger.info("pokemontcg_search_card", card_name=name, set_name=set_name)

        data = await self._request("/cards", params={"q": build_search_query(name, set_name)})
        response = CardListResponse.model_validate(data)

        if not response.data:
            logger.info("pokemontcg_search_card_no_match", card_name=name, set_name=set_name)
            return None

        card = CardData.model_validate(response.data[0])
        logger.info(
            "pokemontcg_search_card_complete",
            card_name=card.name,
            set_name=card.set.name,
            price=str(extract_price(card)),
        )
        return card
