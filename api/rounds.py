"""
Round API Endpoints（唯讀）

重點：
1. GET /round 會順便 lazy 關閉過期的下注（get_or_create_current_round 的副作用）
2. 金額一律以十進位字串回傳
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from database import get_db, get_settings
from models import Round
from schemas import (
    BetResponse,
    CurrentRoundResponse,
    RoundResponse,
    RoundSummary,
    RoundTotals,
    RulesResponse,
)
from core.round_manager import RoundManager
from api.rate_limit import rate_limit
from services.amount_service import add_amounts
from services.round_phase_service import (
    current_time_ms,
    format_time_remaining,
    is_betting_open,
    time_remaining_ms,
)

router = APIRouter(prefix="/api/coinflip", tags=["rounds"])
logger = logging.getLogger(__name__)


def serialize_round(round_obj: Round, now_ms: Optional[int] = None) -> RoundResponse:
    """Round -> RoundResponse（含剩餘時間與彩池總額）"""
    now = now_ms if now_ms is not None else current_time_ms()
    remaining = time_remaining_ms(round_obj, now)

    return RoundResponse(
        id=round_obj.id,
        status=round_obj.status,
        betting_open=is_betting_open(round_obj, now),
        started_at=round_obj.started_at,
        closes_at=round_obj.closes_at,
        time_remaining_ms=remaining,
        time_remaining_formatted=format_time_remaining(remaining),
        bets=[BetResponse.model_validate(b) for b in round_obj.bets],
        totals=RoundTotals(
            heads=round_obj.total_heads,
            tails=round_obj.total_tails,
            pool=add_amounts(round_obj.total_heads, round_obj.total_tails),
        ),
        result=round_obj.result,
        flip_tx_hash=round_obj.flip_tx_hash,
        resolved_at=round_obj.resolved_at,
    )


def summarize_round(round_obj: Round) -> RoundSummary:
    return RoundSummary(
        id=round_obj.id,
        result=round_obj.result,
        total_bets=len(round_obj.bets),
        pool=add_amounts(round_obj.total_heads, round_obj.total_tails),
        resolved_at=round_obj.resolved_at,
    )


@router.get("/round", response_model=CurrentRoundResponse, dependencies=[Depends(rate_limit("status"))])
def get_current_round(db: Session = Depends(get_db)):
    """
    取得目前回合狀態、規則與最近 5 回合

    每個 client 每 10 秒最多 30 次（429）

    返回：
        - round: 目前回合（狀態、剩餘時間、下注、總額）
        - rules: 下注上下限、下注時間
        - recent_rounds: 最近結算的回合
    """
    try:
        settings = get_settings()
        round_obj = RoundManager.get_or_create_current_round(db)
        history = RoundManager.get_round_history(db, 5)

        return CurrentRoundResponse(
            round=serialize_round(round_obj),
            rules=RulesResponse(
                min_bet=f"{settings.min_bet_amount} {settings.token_symbol}",
                max_bet=f"{settings.max_bet_amount} {settings.token_symbol}",
                betting_window=f"{settings.betting_window_ms // 60000} minutes",
                payout_model="Parimutuel - winners split losers' pool proportionally",
            ),
            recent_rounds=[summarize_round(r) for r in history],
        )

    except Exception as e:
        logger.error(f"Failed to get current round: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to get round status")


@router.get("/rounds/{round_id}", response_model=RoundResponse)
def get_round(round_id: str, db: Session = Depends(get_db)):
    """取得指定回合"""
    try:
        round_obj = RoundManager.get_round(db, round_id)
        if not round_obj:
            raise HTTPException(status_code=404, detail="Round not found")

        return serialize_round(round_obj)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to get round {round_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/history", response_model=List[RoundSummary])
def get_round_history(
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db)
):
    """最近結算的回合（最新在前）"""
    try:
        return [summarize_round(r) for r in RoundManager.get_round_history(db, limit)]

    except Exception as e:
        logger.error(f"Failed to get round history: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
