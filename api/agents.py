"""
Agent API Endpoints

職責：
1. 查詢 agent 戰績
2. 觸發內建 AI agent 下注（cron）
3. 查詢內建 agent 本回合是否已下注
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import logging

from database import get_db
from schemas import (
    AgentPredictRequest,
    AgentPredictResponse,
    AgentPredictionResponse,
    AgentStatsResponse,
    AgentStatusListResponse,
    AgentStatusResponse,
    BetResponse,
)
from core.bet_ledger import normalize_address
from core.round_manager import RoundManager
from core.exceptions import BettingClosed, InvalidAddress, TooCloseToRoundEnd
from services import stats_service
from services.agent_strategy_service import (
    PERSONALITIES,
    AgentWallet,
    run_agent_predictions,
)
from api.admin import require_admin_key

router = APIRouter(prefix="/api/coinflip/agents", tags=["agents"])
logger = logging.getLogger(__name__)


@router.get("/predict", response_model=AgentStatusListResponse)
def get_agent_statuses(db: Session = Depends(get_db)):
    """
    內建 agent 本回合的下注狀態

    以 participant_name 對應 agent 個性名稱
    """
    try:
        round_obj = RoundManager.get_or_create_current_round(db)
        bets_by_name = {b.participant_name: b for b in round_obj.bets}

        agents = []
        for agent_id, personality in PERSONALITIES.items():
            bet = bets_by_name.get(personality.name)
            agents.append(AgentStatusResponse(
                agent_id=agent_id,
                agent_name=personality.name,
                strategy=personality.strategy,
                has_bet=bet is not None,
                bet=BetResponse.model_validate(bet) if bet is not None else None,
            ))

        return AgentStatusListResponse(
            round_id=round_obj.id,
            round_status=round_obj.status,
            agents=agents,
        )

    except Exception as e:
        logger.error(f"Failed to get agent statuses: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to get agent statuses")


@router.post("/predict", response_model=AgentPredictResponse, dependencies=[Depends(require_admin_key)])
def trigger_agent_predictions(payload: AgentPredictRequest, db: Session = Depends(get_db)):
    """
    讓內建 agent 對目前回合下注（cron endpoint，每回合開始時呼叫）

    參數：
        agents: [{agent_id, address, balance}]，餘額由 keeper 從鏈上查好帶進來
    """
    try:
        run = run_agent_predictions(
            db,
            [AgentWallet(a.agent_id, a.address, a.balance) for a in payload.agents],
        )

        return AgentPredictResponse(
            round_id=run.round_id,
            predictions=[AgentPredictionResponse.model_validate(p) for p in run.predictions],
            successful_bets=[AgentPredictionResponse.model_validate(p) for p in run.successful_bets],
            errors=run.errors,
            message=f"{len(run.successful_bets)} agents placed predictions",
        )

    except (BettingClosed, TooCloseToRoundEnd) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to process agent predictions: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to process agent predictions")


@router.get("/{address}/stats", response_model=AgentStatsResponse)
def get_agent_stats(address: str, db: Session = Depends(get_db)):
    """agent 累計戰績（沒有紀錄時全為 0）"""
    try:
        stats = stats_service.get_agent_stats(db, normalize_address(address))
        return AgentStatsResponse.model_validate(stats)

    except InvalidAddress as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to get agent stats: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
