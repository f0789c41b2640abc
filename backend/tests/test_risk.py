"""
Tests for RiskValidator and average-cost position accounting.
"""

import pytest

from conftest import buy, hold, sell
from tradepilot.core.errors import MarketDataError
from tradepilot.db.repositories import compute_fill
from tradepilot.models.decision import HoldDecision
from tradepilot.models.market import Quote
from tradepilot.services.risk import RiskValidator, RiskVerdict


def _quotes(**prices):
    return {symbol: Quote(symbol=symbol, price=price) for symbol, price in prices.items()}


class TestRiskValidator:

    def setup_method(self):
        self.validator = RiskValidator(min_confidence=70)

    def test_hold_passes_through(self):
        check = self.validator.validate(hold(), 1000.0, 0.2, _quotes(AAPL=50.0))

        assert check.verdict == RiskVerdict.HOLD
        assert check.quantity == 0

    @pytest.mark.parametrize("confidence, verdict", [(70, RiskVerdict.TRADE), (69, RiskVerdict.HOLD)])
    def test_confidence_threshold(self, confidence, verdict):
        check = self.validator.validate(
            buy("AAPL", confidence=confidence, quantity=1), 1000.0, 0.2, _quotes(AAPL=50.0)
        )

        assert check.verdict == verdict

    def test_low_confidence_becomes_hold_decision(self):
        check = self.validator.validate(
            buy("AAPL", confidence=60, reasoning="Maybe"), 1000.0, 0.2, _quotes(AAPL=50.0)
        )

        assert isinstance(check.decision, HoldDecision)
        assert check.decision.symbol == "AAPL"
        assert "Maybe" in check.decision.reasoning
        assert check.reason == "low_confidence"

    def test_omitted_quantity_sized_from_max_position(self):
        check = self.validator.validate(buy("AAPL"), 1000.0, 0.2, _quotes(AAPL=50.0))

        assert check.verdict == RiskVerdict.TRADE
        assert check.quantity == 4
        assert check.total_amount == pytest.approx(200.0)

    def test_sizing_floors_fractional_units(self):
        check = self.validator.validate(buy("MSFT"), 1000.0, 0.2, _quotes(MSFT=70.0))

        # 200 / 70 = 2.857...
        assert check.quantity == 2

    def test_buy_over_balance_downsized(self):
        check = self.validator.validate(buy("AAPL", quantity=30), 1000.0, 0.2, _quotes(AAPL=45.0))

        assert check.verdict == RiskVerdict.TRADE
        assert check.quantity == 22
        assert check.requested_quantity == 30
        assert check.total_amount <= 1000.0

    def test_buy_unaffordable_aborts(self):
        check = self.validator.validate(buy("AAPL", quantity=1), 40.0, 0.2, _quotes(AAPL=50.0))

        assert check.verdict == RiskVerdict.ABORT
        assert check.quantity == 0
        assert "Insufficient balance" in check.reason

    def test_omitted_quantity_sized_to_zero_aborts(self):
        check = self.validator.validate(buy("BTCUSD"), 1000.0, 0.2, _quotes(BTCUSD=43500.0))

        assert check.verdict == RiskVerdict.ABORT

    def test_missing_quote_raises(self):
        with pytest.raises(MarketDataError):
            self.validator.validate(buy("TSLA", quantity=1), 1000.0, 0.2, _quotes(AAPL=50.0))

    def test_sell_without_position_aborts(self):
        check = self.validator.validate(sell("AAPL", quantity=1), 1000.0, 0.2, _quotes(AAPL=50.0))

        assert check.verdict == RiskVerdict.ABORT
        assert "No position" in check.reason

    def test_sell_capped_at_position(self):
        check = self.validator.validate(
            sell("AAPL", quantity=10), 1000.0, 0.2, _quotes(AAPL=50.0), held_quantity=3
        )

        assert check.verdict == RiskVerdict.TRADE
        assert check.quantity == 3

    def test_short_selling_allowed(self):
        validator = RiskValidator(min_confidence=70, allow_short_selling=True)

        check = validator.validate(sell("AAPL", quantity=5), 1000.0, 0.2, _quotes(AAPL=50.0))

        assert check.verdict == RiskVerdict.TRADE
        assert check.quantity == 5


class TestComputeFill:

    def test_open_long(self):
        effect = compute_fill(0.0, 0.0, "buy", 4, 50.0)

        assert effect.quantity == 4
        assert effect.average_price == 50.0
        assert effect.realized_pnl is None

    def test_add_to_long_reaverages(self):
        effect = compute_fill(4.0, 50.0, "buy", 4, 60.0)

        assert effect.quantity == 8
        assert effect.average_price == pytest.approx(55.0)

    def test_partial_close_realizes_gain(self):
        effect = compute_fill(8.0, 55.0, "sell", 3, 65.0)

        assert effect.quantity == 5
        assert effect.average_price == pytest.approx(55.0)
        assert effect.realized_pnl == pytest.approx(30.0)

    def test_full_close_realizes_loss(self):
        effect = compute_fill(4.0, 50.0, "sell", 4, 45.0)

        assert effect.quantity == 0
        assert effect.average_price == 0
        assert effect.realized_pnl == pytest.approx(-20.0)

    def test_cover_short_at_gain(self):
        effect = compute_fill(-5.0, 100.0, "buy", 5, 90.0)

        assert effect.quantity == 0
        assert effect.realized_pnl == pytest.approx(50.0)

    def test_flip_long_to_short(self):
        effect = compute_fill(2.0, 50.0, "sell", 5, 60.0)

        assert effect.quantity == -3
        assert effect.average_price == 60.0
        assert effect.realized_pnl == pytest.approx(20.0)
