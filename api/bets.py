"""
Bet API Endpoints

職責：
1. 下注
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import logging

from database import get_db, get_settings
from schemas import BetPlace, BetResponse, PlaceBetResponse
from core.bet_ledger import BetLedger
from core.round_manager import RoundManager
from core.exceptions import (
    ValidationError,
    BettingClosed,
    BetAlreadyPlaced,
    RoundNotFound,
    WriteConflict,
)
from api.rounds import serialize_round
from api.rate_limit import rate_limit

router = APIRouter(prefix="/api/coinflip", tags=["bets"])
logger = logging.getLogger(__name__)


@router.post("/bet", response_model=PlaceBetResponse, dependencies=[Depends(rate_limit("bet"))])
def place_bet(bet_data: BetPlace, db: Session = Depends(get_db)):
    """
    在目前回合下注

    前置條件：
    - 每個 client 每 60 秒最多 5 次（429）
    - 回合必須是 open 且在下注時間內
    - 金額在 [min_bet, max_bet]
    - 同一地址每回合只能下注一次

    流程：
    1. BetLedger.place_bet()（驗證 + 寫入）
    2. 回傳下注與更新後的回合
    """
    try:
        bet = BetLedger.place_bet(
            db,
            bet_data.agent_address,
            bet_data.agent_name,
            bet_data.prediction,
            bet_data.amount,
        )
        round_obj = RoundManager.get_round(db, bet.round_id)

        settings = get_settings()
        return PlaceBetResponse(
            bet=BetResponse.model_validate(bet),
            round=serialize_round(round_obj),
            message=(
                f"Bet placed! {bet.amount} {settings.token_symbol} "
                f"on {bet.prediction.value.upper()}"
            ),
        )

    except (ValidationError, BettingClosed, BetAlreadyPlaced) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RoundNotFound:
        raise HTTPException(status_code=404, detail="Round not found")
    except WriteConflict as e:
        logger.warning(f"Bet conflict for {bet_data.agent_address}: {e}")
        raise HTTPException(status_code=409, detail="Round is busy, please retry")
    except Exception as e:
        logger.error(f"Failed to place bet: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to place bet")
