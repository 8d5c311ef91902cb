"""Tests for per-agent statistics."""
from __future__ import annotations

from models import AgentStats, Prediction
from services.payout_service import build_round_result
from services.stats_service import apply_round_result, get_agent_stats, update_agent_stats
from tests.conftest import ALICE, BOB, CAROL
from tests.services.test_payout_service import scenario_a


class TestGetAgentStats:
    def test_unknown_address_returns_zeros(self, db):
        stats = get_agent_stats(db, ALICE)

        assert stats.address == ALICE
        assert (stats.total_bets, stats.wins, stats.losses) == (0, 0, 0)
        assert stats.total_wagered == "0"
        assert stats.total_won == "0"
        # not persisted
        assert db.query(AgentStats).count() == 0

    def test_lookup_is_case_insensitive(self, db):
        update_agent_stats(db, ALICE, True, "10", "15")
        assert get_agent_stats(db, ALICE.upper().replace("0X", "0x")).wins == 1


class TestUpdateAgentStats:
    def test_win_then_loss(self, db):
        update_agent_stats(db, ALICE, True, "100", "133.333333333333333333")
        stats = update_agent_stats(db, ALICE, False, "0.1", "0")

        assert stats.total_bets == 2
        assert stats.wins == 1
        assert stats.losses == 1
        assert stats.total_wagered == "100.1"
        assert stats.total_won == "133.333333333333333333"

    def test_counts_stay_consistent(self, db):
        for i in range(5):
            stats = update_agent_stats(db, BOB, i % 2 == 0, "10", "20" if i % 2 == 0 else "0")

        assert stats.total_bets == stats.wins + stats.losses == 5
        assert stats.total_won == "60"
        assert stats.total_wagered == "50"


class TestApplyRoundResult:
    def test_scenario_a(self, db):
        round_obj = scenario_a()
        result = build_round_result(round_obj, Prediction.HEADS, "0xabc")

        assert apply_round_result(db, round_obj, result) == 3

        alice = get_agent_stats(db, ALICE)
        assert (alice.wins, alice.losses) == (1, 0)
        assert alice.total_wagered == "100"
        assert alice.total_won == "133.333333333333333333"

        bob = get_agent_stats(db, BOB)
        assert (bob.wins, bob.losses) == (0, 1)
        assert bob.total_wagered == "50"
        assert bob.total_won == "0"

        assert get_agent_stats(db, CAROL).total_won == "66.666666666666666666"
