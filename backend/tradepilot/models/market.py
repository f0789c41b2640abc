"""Market and news data passed into a trading cycle"""

from datetime import UTC, datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class Quote(BaseModel):
    """Latest quote for one symbol"""

    symbol: str
    price: float = Field(..., gt=0)
    bid: float = 0.0
    ask: float = 0.0
    volume: float = 0.0
    change: float = 0.0
    change_percent: float = 0.0
    high: float = 0.0
    low: float = 0.0
    open: float = 0.0
    close: float = 0.0
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    synthetic: bool = False

    def to_snapshot(self) -> dict[str, Any]:
        """JSON-safe representation stored with agent actions"""
        return self.model_dump(mode="json", exclude={"symbol"})


class Article(BaseModel):
    title: str
    summary: str = ""
    url: str = ""
    source: str = ""
    published_at: Optional[datetime] = None


def snapshot_quotes(quotes: dict[str, Quote]) -> dict[str, Any]:
    return {symbol: quote.to_snapshot() for symbol, quote in quotes.items()}
