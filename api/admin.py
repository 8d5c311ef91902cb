"""
Admin / Keeper API Endpoints

職責：
1. 停止下注
2. 準備擲幣（close + executing）
3. 以 keeper 回報的鏈上結果結算
4. 救援卡住的回合

若 ADMIN_API_KEY 有設定，需帶 x-admin-key header
"""
from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session
from typing import Optional
import hmac
import logging

from database import get_db, get_settings
from schemas import (
    ActionResponse,
    ConsolationPrizeResponse,
    ExecutionResponse,
    RoundResolve,
    RoundResultResponse,
    SettlementResponse,
)
from core.round_manager import RoundManager
from core.exceptions import (
    InvalidPrediction,
    RoundAlreadyResolved,
    WriteConflict,
)
from services import settlement_service

router = APIRouter(prefix="/api/coinflip", tags=["admin"])
logger = logging.getLogger(__name__)


def require_admin_key(x_admin_key: Optional[str] = Header(None)):
    """FastAPI dependency：檢查 x-admin-key"""
    expected = get_settings().admin_api_key
    if not expected:
        return
    if not x_admin_key or not hmac.compare_digest(x_admin_key, expected):
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.post("/close", response_model=ActionResponse, dependencies=[Depends(require_admin_key)])
def close_betting(db: Session = Depends(get_db)):
    """
    停止下注（open -> closed）

    冪等：已經不是 open 時回傳 status="noop"
    """
    try:
        round_obj = RoundManager.close_betting(db)
        if round_obj is None:
            return ActionResponse(status="noop")
        return ActionResponse(status="ok", round_id=round_obj.id)

    except WriteConflict:
        raise HTTPException(status_code=409, detail="Round is busy, please retry")
    except Exception as e:
        logger.error(f"Failed to close betting: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/execute", response_model=ExecutionResponse, dependencies=[Depends(require_admin_key)])
def execute_round(db: Session = Depends(get_db)):
    """
    準備擲幣（cron endpoint）

    效果：
    - 沒有下注 → 直接開新局，keeper 不需要擲幣
    - 有下注 → closed -> executing，keeper 接著送鏈上 flip，再呼叫 /resolve
    """
    try:
        ticket = settlement_service.begin_execution(db)
        return ExecutionResponse(
            round_id=ticket.round.id,
            status=ticket.round.status,
            new_round_started=ticket.new_round_started,
            message=ticket.message,
        )

    except RoundAlreadyResolved as e:
        raise HTTPException(status_code=400, detail=str(e))
    except WriteConflict:
        raise HTTPException(status_code=409, detail="Round is busy, please retry")
    except Exception as e:
        logger.error(f"Failed to execute round: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/resolve", response_model=SettlementResponse, dependencies=[Depends(require_admin_key)])
def resolve_round(payload: RoundResolve, db: Session = Depends(get_db)):
    """
    以鏈上 flip 結果結算目前回合

    參數：
        outcome: heads / tails
        tx_hash: flip transaction hash（安慰獎的 entropy）

    注意：
        重複呼叫（keeper 重試）會得到 409，不會重複結算
    """
    try:
        settlement = settlement_service.settle_round(db, payload.outcome, payload.tx_hash)
        if settlement is None:
            raise HTTPException(status_code=409, detail="No round awaiting resolution")

        return SettlementResponse(
            result=RoundResultResponse.model_validate(settlement.result),
            consolation_prizes=[
                ConsolationPrizeResponse.model_validate(p) for p in settlement.consolation_prizes
            ],
            new_round_id=settlement.new_round.id,
            new_round_closes_at=settlement.new_round.closes_at,
        )

    except HTTPException:
        raise
    except InvalidPrediction as e:
        raise HTTPException(status_code=400, detail=str(e))
    except WriteConflict:
        raise HTTPException(status_code=409, detail="Round is busy, please retry")
    except Exception as e:
        logger.error(f"Failed to resolve round: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/force-reset", response_model=ActionResponse, dependencies=[Depends(require_admin_key)])
def force_reset_round(db: Session = Depends(get_db)):
    """
    封存卡住的回合並開新局（管理員救援）
    """
    try:
        round_obj = RoundManager.force_reset_round(db)
        return ActionResponse(status="ok", round_id=round_obj.id)

    except WriteConflict:
        raise HTTPException(status_code=409, detail="Round is busy, please retry")
    except Exception as e:
        logger.error(f"Failed to force reset round: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
