"""
結算服務：把「關盤 → 外部擲幣 → 結算 → 派彩資料 → 開新局」串起來

外部 keeper（cron）的流程：
1. POST /execute   → begin_execution()：停止下注、標記 executing
2. keeper 自己送鏈上 flip transaction，等 receipt
3. POST /resolve   → settle_round(outcome, tx_hash)

擲幣本身、代幣轉帳都不在這個服務內；這裡只負責狀態與計算。
"""
from dataclasses import dataclass, field
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from models import Round, RoundStatus
from core.round_manager import RoundManager, parse_prediction
from core.state_machine import RoundStateMachine
from core.locks import retry_on_conflict
from core.exceptions import RoundAlreadyResolved
from services.payout_service import (
    ConsolationPrize,
    RoundResult,
    calculate_consolation_prizes,
)
from services.round_phase_service import current_time_ms
from services.stats_service import accumulate_round_result
from database import transactional

logger = logging.getLogger(__name__)


@dataclass
class ExecutionTicket:
    round: Round
    # 沒有人下注時直接開新局，不需要擲幣
    new_round_started: bool = False
    message: str = ""


@dataclass
class Settlement:
    result: RoundResult
    new_round: Round
    consolation_prizes: List[ConsolationPrize] = field(default_factory=list)


@retry_on_conflict
@transactional
def _archive_empty_round(db: Session, round_id: str, now_ms: int) -> Round:
    state, round_obj = RoundManager.lock_current(db)

    if round_obj is not None and round_obj.id == round_id and not round_obj.bets \
            and round_obj.status != RoundStatus.RESOLVED:
        RoundStateMachine.transition(round_obj, RoundStatus.RESOLVED, forced=True)
        round_obj.resolved_at = now_ms
        logger.info(f"Round {round_id} had no bets, archived")

    if round_obj is not None and round_obj.status != RoundStatus.RESOLVED:
        # 有人在這期間下注了，保留目前回合
        return round_obj

    return RoundManager.start_round(db, state, now_ms)


def begin_execution(db: Session, now_ms: Optional[int] = None) -> ExecutionTicket:
    """
    準備擲幣：停止下注並標記 executing

    流程：
    1. 取得目前回合
    2. 已結算 → RoundAlreadyResolved
    3. 沒有下注 → 封存空回合、開新局（不需擲幣）
    4. close_betting + mark_executing（兩者都是冪等的）

    返回：
        ExecutionTicket
    """
    now = now_ms if now_ms is not None else current_time_ms()
    round_obj = RoundManager.get_or_create_current_round(db, now_ms=now)

    if round_obj.status == RoundStatus.RESOLVED:
        raise RoundAlreadyResolved(round_obj.id)

    if not round_obj.bets:
        new_round = _archive_empty_round(db, round_obj.id, now)
        return ExecutionTicket(
            round=new_round,
            new_round_started=new_round.id != round_obj.id,
            message="No bets this round. New round created.",
        )

    RoundManager.close_betting(db)
    RoundManager.mark_executing(db)

    round_obj = RoundManager.get_round(db, round_obj.id)
    logger.info(
        f"Round {round_obj.id} executing: {len(round_obj.bets)} bets, "
        f"heads={round_obj.total_heads}, tails={round_obj.total_tails}"
    )
    return ExecutionTicket(round=round_obj, message="Flip in progress")


@retry_on_conflict
@transactional
def settle_round(
    db: Session,
    outcome,
    tx_ref: str,
    now_ms: Optional[int] = None,
) -> Optional[Settlement]:
    """
    結算目前回合並開新局（同一個 transaction）

    流程：
    1. resolve（closed / executing -> resolved）
    2. 更新所有參與者統計
    3. 計算輸家安慰獎
    4. 開新局

    返回：
        Settlement；回合已結算（重試的 keeper 呼叫）則回傳 None
    """
    outcome = parse_prediction(outcome)
    now = now_ms if now_ms is not None else current_time_ms()

    round_obj, result = RoundManager.resolve_current(db, outcome, tx_ref, now)
    if result is None:
        return None

    accumulate_round_result(db, round_obj, result)
    prizes = calculate_consolation_prizes(round_obj, outcome, tx_ref)

    state, _ = RoundManager.lock_current(db)
    new_round = RoundManager.start_round(db, state, now)

    logger.info(
        f"Round {result.round_id} settled: {len(result.winners)} winners, "
        f"{len(prizes)} consolation prizes, unclaimed={result.unclaimed_pool}; "
        f"next round {new_round.id}"
    )
    return Settlement(result=result, new_round=new_round, consolation_prizes=prizes)
