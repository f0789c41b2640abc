"""
Decision models for AI trading decisions.

A decision is a tagged union over ``action``. The decision service reply is
untrusted text, so every field is validated here before the orchestrator
acts on it.
"""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator


class _DecisionBase(BaseModel):
    confidence: int = Field(..., ge=0, le=100, description="Confidence score 0-100")
    reasoning: str = Field(default="", description="Explanation of the decision")

    @field_validator("reasoning", mode="before")
    @classmethod
    def coerce_reasoning(cls, v):
        return "" if v is None else str(v)


class _TradeDecision(_DecisionBase):
    symbol: str = Field(..., min_length=1, max_length=20)
    quantity: Optional[float] = Field(
        default=None,
        gt=0,
        description="Units to trade; sized from max_position_size when omitted",
    )

    @field_validator("symbol", mode="before")
    @classmethod
    def normalize_symbol(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v


class BuyDecision(_TradeDecision):
    action: Literal["buy"] = "buy"


class SellDecision(_TradeDecision):
    action: Literal["sell"] = "sell"


class HoldDecision(_DecisionBase):
    action: Literal["hold"] = "hold"
    symbol: Optional[str] = None
    quantity: Optional[float] = None


Decision = Annotated[
    Union[BuyDecision, SellDecision, HoldDecision],
    Field(discriminator="action"),
]

decision_adapter: TypeAdapter[Decision] = TypeAdapter(Decision)


def hold_from(decision: Union[BuyDecision, SellDecision], reason: str) -> HoldDecision:
    """Downgrade a trade decision to hold, keeping its context."""
    return HoldDecision(
        symbol=decision.symbol,
        quantity=decision.quantity,
        confidence=decision.confidence,
        reasoning=f"{reason}. Original reasoning: {decision.reasoning}",
    )
