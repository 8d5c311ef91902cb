"""
統計服務：每個 agent 的累計戰績

每個已結算回合、每個有下注的地址各更新一次：
- 贏家：update_agent_stats(addr, True, bet_amount, total_payout)
- 輸家：update_agent_stats(addr, False, bet_amount, "0")

統計永遠不重置。
"""
from sqlalchemy.orm import Session
from typing import Dict
import logging

from models import AgentStats, Round
from core.locks import with_stats_lock, retry_on_conflict
from services.amount_service import add_amounts
from services.payout_service import RoundResult
from database import transactional

logger = logging.getLogger(__name__)


def _empty_stats(address: str) -> AgentStats:
    return AgentStats(
        address=address,
        total_bets=0,
        wins=0,
        losses=0,
        total_wagered="0",
        total_won="0",
    )


def get_agent_stats(db: Session, address: str) -> AgentStats:
    """
    取得 agent 統計

    沒有紀錄時回傳全 0 的預設值（不寫入資料庫）
    """
    address = address.lower()
    stats = db.query(AgentStats).filter(AgentStats.address == address).first()
    return stats if stats is not None else _empty_stats(address)


def accumulate_agent_stats(
    db: Session,
    address: str,
    won: bool,
    wagered: str,
    payout: str,
) -> AgentStats:
    """
    更新統計（不 commit，由外層 transaction 負責）

    金額用 minor units 精確相加
    """
    address = address.lower()
    stats = with_stats_lock(address, db).first()
    if stats is None:
        stats = _empty_stats(address)
        db.add(stats)

    stats.total_bets += 1
    if won:
        stats.wins += 1
        stats.total_won = add_amounts(stats.total_won, payout)
    else:
        stats.losses += 1
    stats.total_wagered = add_amounts(stats.total_wagered, wagered)

    db.flush()
    return stats


@retry_on_conflict
@transactional
def update_agent_stats(
    db: Session,
    address: str,
    won: bool,
    wagered: str,
    payout: str,
) -> AgentStats:
    """單一地址的統計更新（自成一個 transaction）"""
    return accumulate_agent_stats(db, address, won, wagered, payout)


def accumulate_round_result(db: Session, round_obj: Round, result: RoundResult) -> int:
    """
    把一個回合的結果套用到所有參與者（不 commit）

    返回：
        更新的地址數
    """
    bets_by_address: Dict[str, str] = {
        b.participant_address: b.amount for b in round_obj.bets
    }

    for payout in result.winners:
        accumulate_agent_stats(
            db, payout.participant_address, True, payout.bet_amount, payout.total_payout
        )

    for address in result.losers:
        accumulate_agent_stats(db, address, False, bets_by_address[address], "0")

    updated = len(result.winners) + len(result.losers)
    logger.info(f"Agent stats updated for round {result.round_id}: {updated} agents")
    return updated


@retry_on_conflict
@transactional
def apply_round_result(db: Session, round_obj: Round, result: RoundResult) -> int:
    """所有參與者的統計在同一個 transaction 內更新"""
    return accumulate_round_result(db, round_obj, result)
