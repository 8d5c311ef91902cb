"""
API Request / Response schemas

金額在 API 上一律是十進位字串，不用 float
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional

from models import Prediction, RoundStatus, UnclaimedPoolPolicy


# ============ Request ============

class BetPlace(BaseModel):
    agent_address: str
    agent_name: Optional[str] = None
    prediction: str
    amount: str


class RoundResolve(BaseModel):
    outcome: str
    tx_hash: str = Field(min_length=1)


class AgentWalletIn(BaseModel):
    agent_id: str
    address: str
    balance: str


class AgentPredictRequest(BaseModel):
    agents: List[AgentWalletIn]


# ============ Response ============

class BetResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    round_id: str
    participant_address: str
    participant_name: str
    prediction: Prediction
    amount: str
    timestamp: int


class RoundTotals(BaseModel):
    heads: str
    tails: str
    pool: str


class RoundResponse(BaseModel):
    id: str
    status: RoundStatus
    betting_open: bool
    started_at: int
    closes_at: int
    time_remaining_ms: int
    time_remaining_formatted: str
    bets: List[BetResponse]
    totals: RoundTotals
    result: Optional[Prediction] = None
    flip_tx_hash: Optional[str] = None
    resolved_at: Optional[int] = None


class RoundSummary(BaseModel):
    id: str
    result: Optional[Prediction] = None
    total_bets: int
    pool: str
    resolved_at: Optional[int] = None


class RulesResponse(BaseModel):
    min_bet: str
    max_bet: str
    betting_window: str
    payout_model: str


class CurrentRoundResponse(BaseModel):
    round: RoundResponse
    rules: RulesResponse
    recent_rounds: List[RoundSummary]


class PlaceBetResponse(BaseModel):
    bet: BetResponse
    round: RoundResponse
    message: str


class PayoutResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    participant_address: str
    participant_name: str
    bet_amount: str
    winnings: str
    total_payout: str


class ConsolationPrizeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    participant_address: str
    participant_name: str
    amount: str
    multiplier: int


class RoundResultResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    round_id: str
    result: Prediction
    flip_tx_hash: str
    total_pool: str
    heads_bets: int
    tails_bets: int
    winners: List[PayoutResponse]
    losers: List[str]
    unclaimed_pool: str
    pool_policy: UnclaimedPoolPolicy
    refunds: List[PayoutResponse]


class SettlementResponse(BaseModel):
    result: RoundResultResponse
    consolation_prizes: List[ConsolationPrizeResponse]
    new_round_id: str
    new_round_closes_at: int


class ExecutionResponse(BaseModel):
    round_id: str
    status: RoundStatus
    new_round_started: bool
    message: str


class AgentStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    address: str
    total_bets: int
    wins: int
    losses: int
    total_wagered: str
    total_won: str


class AgentPredictionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    agent_id: str
    agent_name: str
    agent_address: str
    prediction: Optional[Prediction] = None
    amount: str
    reasoning: str
    will_bet: bool


class AgentPredictResponse(BaseModel):
    round_id: str
    predictions: List[AgentPredictionResponse]
    successful_bets: List[AgentPredictionResponse]
    errors: List[str]
    message: str


class AgentStatusResponse(BaseModel):
    agent_id: str
    agent_name: str
    strategy: str
    has_bet: bool
    bet: Optional[BetResponse] = None


class AgentStatusListResponse(BaseModel):
    round_id: str
    round_status: RoundStatus
    agents: List[AgentStatusResponse]


class ActionResponse(BaseModel):
    status: str
    round_id: Optional[str] = None
