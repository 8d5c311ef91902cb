"""Tests for the built-in agent personalities."""
from __future__ import annotations

import random
from decimal import Decimal

import pytest

from core.exceptions import BettingClosed, TooCloseToRoundEnd
from core.round_manager import RoundManager
from models import Prediction, Round
from services.agent_strategy_service import (
    PERSONALITIES,
    AgentWallet,
    bet_size,
    choose_side,
    heads_share,
    make_agent_prediction,
    run_agent_predictions,
)
from tests.conftest import ALICE, BOB, CAROL, T0

WINDOW = 55 * 60 * 1000


class FixedRandom(random.Random):
    def __init__(self, value):
        super().__init__(0)
        self.value = value

    def random(self):
        return self.value


def pool(heads, tails):
    return Round(id="r", total_heads=heads, total_tails=tails, started_at=0, closes_at=1)


class TestPersonalities:
    def test_eight_agents(self):
        assert len(PERSONALITIES) == 8
        for personality in PERSONALITIES.values():
            assert 0 <= personality.risk_level <= 1
            assert 0 <= personality.confidence <= 1


class TestBetSize:
    def test_high_risk_large_balance(self):
        assert bet_size(Decimal("1000"), 0.9, Decimal("10"), Decimal("1000")) == Decimal("271")

    def test_never_below_min(self):
        assert bet_size(Decimal("20"), 0.5, Decimal("10"), Decimal("1000")) == Decimal("10")

    def test_capped_by_max_bet(self):
        assert bet_size(Decimal("1000000"), 1.0, Decimal("10"), Decimal("1000")) == Decimal("1000")


class TestChooseSide:
    def test_heads_share(self):
        assert heads_share(pool("0", "0")) == 0.5
        assert heads_share(pool("75", "25")) == 0.75

    @pytest.mark.parametrize("strategy,heads_pct,expected", [
        ("follow_majority", 0.7, Prediction.HEADS),
        ("follow_majority", 0.3, Prediction.TAILS),
        ("against_majority", 0.7, Prediction.TAILS),
        ("against_majority", 0.3, Prediction.HEADS),
        ("big_move", 0.3, Prediction.HEADS),
        ("big_move", 0.7, Prediction.TAILS),
        ("contrarian_calculated", 0.8, Prediction.TAILS),
        ("contrarian_calculated", 0.2, Prediction.HEADS),
    ])
    def test_pool_driven_strategies(self, strategy, heads_pct, expected):
        side, reasoning = choose_side(strategy, heads_pct, FixedRandom(0.99))
        assert side == expected
        assert reasoning

    def test_random_strategies_use_rng(self):
        assert choose_side("random", 0.5, FixedRandom(0.9))[0] == Prediction.HEADS
        assert choose_side("random", 0.5, FixedRandom(0.1))[0] == Prediction.TAILS
        assert choose_side("tails_bias", 0.5, FixedRandom(0.5))[0] == Prediction.TAILS


class TestMakeAgentPrediction:
    def test_insufficient_balance(self):
        prediction = make_agent_prediction("martingale", ALICE, pool("0", "0"), "5", FixedRandom(0.0))

        assert prediction.will_bet is False
        assert prediction.prediction is None
        assert prediction.reasoning == "Insufficient EMPTOURS balance"

    def test_sits_out_when_not_confident(self):
        prediction = make_agent_prediction("conservative", ALICE, pool("0", "0"), "1000", FixedRandom(0.99))

        assert prediction.will_bet is False
        assert prediction.reasoning == "Decided to sit this round out"

    def test_bets(self):
        prediction = make_agent_prediction("chaos", ALICE, pool("0", "0"), "1000", FixedRandom(0.0))

        assert prediction.will_bet is True
        assert prediction.agent_name == "Chaos Agent"
        assert prediction.prediction == Prediction.TAILS
        assert prediction.amount == "271"


class TestRunAgentPredictions:
    def wallets(self):
        return [
            AgentWallet("chaos", ALICE, "1000"),
            AgentWallet("conservative", BOB, "1000"),
        ]

    def test_places_bets(self, db):
        run = run_agent_predictions(db, self.wallets(), FixedRandom(0.0), now_ms=T0)

        assert run.round_id == "round_20261017_09"
        assert len(run.successful_bets) == 2
        assert run.errors == []

        round_obj = RoundManager.get_round(db, run.round_id)
        assert [b.participant_name for b in round_obj.bets] == ["Chaos Agent", "Conservative"]
        # conservative follows the pool chaos just moved
        assert round_obj.total_tails == "339"
        assert round_obj.total_heads == "0"

    def test_second_run_reports_existing_bets(self, db):
        run_agent_predictions(db, self.wallets(), FixedRandom(0.0), now_ms=T0)
        run = run_agent_predictions(db, self.wallets(), FixedRandom(0.0), now_ms=T0 + 1000)

        assert run.successful_bets == []
        assert [p.reasoning for p in run.predictions] == ["Already bet this round"] * 2

    def test_unknown_agent(self, db):
        run = run_agent_predictions(db, [AgentWallet("ghost", CAROL, "1000")], FixedRandom(0.0), now_ms=T0)
        assert run.errors == ["ghost: unknown agent"]

    def test_invalid_address_is_collected(self, db):
        run = run_agent_predictions(db, [AgentWallet("chaos", "0x123", "1000")], FixedRandom(0.0), now_ms=T0)
        assert run.errors == ["Chaos Agent: Invalid address format"]

    def test_too_close_to_round_end(self, db):
        RoundManager.get_or_create_current_round(db, now_ms=T0)
        with pytest.raises(TooCloseToRoundEnd):
            run_agent_predictions(db, self.wallets(), FixedRandom(0.0), now_ms=T0 + WINDOW - 1000)

    def test_closed_round(self, db):
        RoundManager.get_or_create_current_round(db, now_ms=T0)
        RoundManager.close_betting(db)
        with pytest.raises(BettingClosed):
            run_agent_predictions(db, self.wallets(), FixedRandom(0.0), now_ms=T0)
