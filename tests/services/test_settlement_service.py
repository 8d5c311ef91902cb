"""Tests for the execute -> resolve -> next round flow."""
from __future__ import annotations

from core.bet_ledger import BetLedger
from core.round_manager import RoundManager
from models import Prediction, RoundStatus
from services.settlement_service import begin_execution, settle_round
from services.stats_service import get_agent_stats
from tests.conftest import ALICE, BOB, CAROL, HOUR_MS, T0

WINDOW = 55 * 60 * 1000
TX = "0x" + "1" * 64


def place_scenario_a(db):
    BetLedger.place_bet(db, ALICE, "alice", "heads", "100", now_ms=T0)
    BetLedger.place_bet(db, BOB, "bob", "tails", "50", now_ms=T0 + 1)
    BetLedger.place_bet(db, CAROL, "carol", "heads", "50", now_ms=T0 + 2)


class TestBeginExecution:
    def test_no_bets_starts_new_round(self, db):
        ticket = begin_execution(db, now_ms=T0)

        assert ticket.new_round_started is True
        assert ticket.round.id == "round_20261017_09_2"
        assert ticket.round.status == RoundStatus.OPEN

        archived = RoundManager.get_round(db, "round_20261017_09")
        assert archived.status == RoundStatus.RESOLVED
        assert archived.result is None

    def test_with_bets_marks_executing(self, db):
        place_scenario_a(db)

        ticket = begin_execution(db, now_ms=T0 + WINDOW + 1)

        assert ticket.new_round_started is False
        assert ticket.message == "Flip in progress"
        assert ticket.round.id == "round_20261017_09"
        assert ticket.round.status == RoundStatus.EXECUTING

    def test_execute_twice_is_harmless(self, db):
        place_scenario_a(db)
        begin_execution(db, now_ms=T0 + 10)

        ticket = begin_execution(db, now_ms=T0 + 20)
        assert ticket.round.status == RoundStatus.EXECUTING


class TestSettleRound:
    def test_full_settlement(self, db):
        place_scenario_a(db)
        begin_execution(db, now_ms=T0 + WINDOW + 1)

        settlement = settle_round(db, "heads", TX, now_ms=T0 + HOUR_MS)

        result = settlement.result
        assert result.result == Prediction.HEADS
        assert result.total_pool == "200"
        assert [w.participant_address for w in result.winners] == [ALICE, CAROL]
        assert result.losers == [BOB]

        assert len(settlement.consolation_prizes) == 1
        prize = settlement.consolation_prizes[0]
        assert prize.participant_address == BOB
        assert 1 <= prize.multiplier <= 5
        assert prize.amount == str(prize.multiplier)

        assert settlement.new_round.id == "round_20261017_10"
        assert settlement.new_round.status == RoundStatus.OPEN
        assert RoundManager.get_or_create_current_round(db, now_ms=T0 + HOUR_MS).id == "round_20261017_10"

        resolved = RoundManager.get_round(db, "round_20261017_09")
        assert resolved.status == RoundStatus.RESOLVED
        assert resolved.flip_tx_hash == TX
        assert resolved.resolved_at == T0 + HOUR_MS

        assert get_agent_stats(db, ALICE).wins == 1
        assert get_agent_stats(db, BOB).losses == 1

    def test_second_settle_is_noop(self, db):
        place_scenario_a(db)
        begin_execution(db, now_ms=T0 + WINDOW + 1)
        settle_round(db, "tails", TX, now_ms=T0 + HOUR_MS)

        assert settle_round(db, "tails", TX, now_ms=T0 + HOUR_MS + 1) is None
        # stats applied exactly once
        assert get_agent_stats(db, BOB).total_bets == 1

    def test_open_round_is_not_settled(self, db):
        place_scenario_a(db)
        assert settle_round(db, "heads", TX, now_ms=T0 + 10) is None
        assert RoundManager.get_round(db, "round_20261017_09").status == RoundStatus.OPEN

    def test_execute_after_settlement_uses_new_round(self, db):
        place_scenario_a(db)
        begin_execution(db, now_ms=T0 + WINDOW + 1)
        settle_round(db, "heads", TX, now_ms=T0 + HOUR_MS)

        # the fresh round has no bets, so it is archived and replaced
        ticket = begin_execution(db, now_ms=T0 + HOUR_MS + 5)
        assert ticket.new_round_started is True
        assert ticket.round.id == "round_20261017_10_2"
