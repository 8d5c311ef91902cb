"""
AI Agent 下注策略

每個 agent 有自己的個性：
- strategy：怎麼選 heads / tails
- risk_level：下注金額的積極程度（0~1）
- confidence：這回合要不要下注的機率（0~1）

cron 在每回合開始時呼叫 run_agent_predictions()，
餘額由呼叫端提供（鏈上查詢不在這個服務內）。
"""
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_FLOOR
from sqlalchemy.orm import Session
from typing import Dict, List, Optional
import logging
import random

from models import Prediction, Round, RoundStatus
from core.bet_ledger import BetLedger, normalize_address
from core.round_manager import RoundManager
from core.exceptions import BettingClosed, CoinflipException, InvalidAmount, TooCloseToRoundEnd
from services.amount_service import parse_amount
from services.round_phase_service import current_time_ms, time_remaining_ms
from database import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Personality:
    name: str
    strategy: str
    risk_level: float
    confidence: float


PERSONALITIES: Dict[str, Personality] = {
    "chaos": Personality("Chaos Agent", "random", 0.9, 0.5),
    "conservative": Personality("Conservative", "follow_majority", 0.2, 0.3),
    "whale": Personality("Whale Agent", "big_move", 0.8, 0.7),
    "lucky": Personality("Lucky Lucy", "streak", 0.6, 0.8),
    "analyst": Personality("Analyst", "contrarian_calculated", 0.4, 0.6),
    "martingale": Personality("Martingale", "double_down", 0.7, 0.9),
    "pessimist": Personality("Pessimist", "tails_bias", 0.3, 0.4),
    "contrarian": Personality("Contrarian", "against_majority", 0.6, 0.75),
}


@dataclass
class AgentWallet:
    agent_id: str
    address: str
    balance: str


@dataclass
class AgentPrediction:
    agent_id: str
    agent_name: str
    agent_address: str
    prediction: Optional[Prediction]
    amount: str
    reasoning: str
    will_bet: bool


@dataclass
class PredictionRun:
    round_id: str
    predictions: List[AgentPrediction] = field(default_factory=list)
    successful_bets: List[AgentPrediction] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def heads_share(round_obj: Round) -> float:
    """目前彩池中 heads 的比例；空彩池視為 0.5"""
    heads = parse_amount(round_obj.total_heads)
    total = heads + parse_amount(round_obj.total_tails)
    return heads / total if total else 0.5


def _coin(rng: random.Random, threshold: float = 0.5) -> Prediction:
    return Prediction.HEADS if rng.random() > threshold else Prediction.TAILS


def choose_side(strategy: str, heads_pct: float, rng: random.Random):
    """
    依策略選邊

    返回：
        (prediction, reasoning)
    """
    if strategy == "follow_majority":
        side = Prediction.HEADS if heads_pct >= 0.5 else Prediction.TAILS
        return side, f"Following the crowd ({heads_pct * 100:.0f}% on heads)"

    if strategy == "big_move":
        # 彩池失衡時押冷門
        if heads_pct < 0.4:
            side = Prediction.HEADS
        elif heads_pct > 0.6:
            side = Prediction.TAILS
        else:
            side = _coin(rng)
        return side, "Making a market-moving play"

    if strategy == "streak":
        return _coin(rng, 0.45), "Feeling lucky today - riding the streak"

    if strategy == "contrarian_calculated":
        if heads_pct > 0.65:
            return Prediction.TAILS, f"Calculated contrarian play - {(1 - heads_pct) * 100:.0f}% payout potential"
        if heads_pct < 0.35:
            return Prediction.HEADS, f"Calculated contrarian play - {heads_pct * 100:.0f}% payout potential"
        return _coin(rng), "Odds balanced - using statistical model"

    if strategy == "double_down":
        side = Prediction.TAILS if rng.random() > 0.48 else Prediction.HEADS
        return side, "Doubling down on the system"

    if strategy == "tails_bias":
        side = Prediction.TAILS if rng.random() > 0.35 else Prediction.HEADS
        return side, "Expecting the worst... betting tails"

    if strategy == "against_majority":
        majority = "heads" if heads_pct >= 0.5 else "tails"
        side = Prediction.TAILS if heads_pct >= 0.5 else Prediction.HEADS
        return side, f"Going against the {majority} crowd"

    if strategy == "random":
        return _coin(rng), "Pure chaos - flipped a mental coin"

    return _coin(rng), "Default random selection"


def bet_size(balance: Decimal, risk_level: float, min_bet: Decimal, max_bet: Decimal) -> Decimal:
    """
    下注金額 = max(min_bet, floor(min_bet + (可負擔上限 - min_bet) * risk))

    可負擔上限 = min(餘額的 30%, max_bet)
    """
    max_affordable = min(balance * Decimal("0.3"), max_bet)
    raw = min_bet + (max_affordable - min_bet) * Decimal(str(risk_level))
    return max(min_bet, raw.to_integral_value(rounding=ROUND_FLOOR))


def make_agent_prediction(
    agent_id: str,
    address: str,
    round_obj: Round,
    balance: str,
    rng: Optional[random.Random] = None,
) -> AgentPrediction:
    """
    決定一個 agent 這回合要不要下注、押哪邊、押多少

    異常：
        KeyError: 未知的 agent_id
    """
    settings = get_settings()
    rng = rng or random.Random()
    personality = PERSONALITIES[agent_id]

    min_bet = Decimal(settings.min_bet_amount)
    max_bet = Decimal(settings.max_bet_amount)
    try:
        available = Decimal(str(balance))
    except ArithmeticError:
        raise InvalidAmount(f"Invalid balance: {balance!r}")

    will_bet = rng.random() < personality.confidence and available >= min_bet
    if not will_bet:
        return AgentPrediction(
            agent_id=agent_id,
            agent_name=personality.name,
            agent_address=address,
            prediction=None,
            amount="0",
            reasoning=(
                f"Insufficient {settings.token_symbol} balance"
                if available < min_bet
                else "Decided to sit this round out"
            ),
            will_bet=False,
        )

    side, reasoning = choose_side(personality.strategy, heads_share(round_obj), rng)
    amount = bet_size(available, personality.risk_level, min_bet, max_bet)

    return AgentPrediction(
        agent_id=agent_id,
        agent_name=personality.name,
        agent_address=address,
        prediction=side,
        amount=str(amount),
        reasoning=reasoning,
        will_bet=True,
    )


def run_agent_predictions(
    db: Session,
    agents: List[AgentWallet],
    rng: Optional[random.Random] = None,
    now_ms: Optional[int] = None,
) -> PredictionRun:
    """
    讓所有 agent 對目前回合下注

    前置條件：
    - 回合必須是 open
    - 離截止至少 agent_cutoff_ms

    個別 agent 失敗（已下注、金額不符）只記錄在 errors，不影響其他 agent

    異常：
        BettingClosed: 回合不是 open
        TooCloseToRoundEnd: 太接近截止
    """
    settings = get_settings()
    rng = rng or random.Random()
    now = now_ms if now_ms is not None else current_time_ms()

    round_obj = RoundManager.get_or_create_current_round(db, now_ms=now)
    if round_obj.status != RoundStatus.OPEN:
        raise BettingClosed(round_obj.id, "Round is not open for betting")
    if time_remaining_ms(round_obj, now) < settings.agent_cutoff_ms:
        raise TooCloseToRoundEnd("Too close to round end")

    run = PredictionRun(round_id=round_obj.id)
    existing = {b.participant_address: b for b in round_obj.bets}

    for wallet in agents:
        personality = PERSONALITIES.get(wallet.agent_id)
        if personality is None:
            run.errors.append(f"{wallet.agent_id}: unknown agent")
            continue

        try:
            address = normalize_address(wallet.address)

            bet = existing.get(address)
            if bet is not None:
                run.predictions.append(AgentPrediction(
                    agent_id=wallet.agent_id,
                    agent_name=personality.name,
                    agent_address=address,
                    prediction=bet.prediction,
                    amount=bet.amount,
                    reasoning="Already bet this round",
                    will_bet=False,
                ))
                continue

            prediction = make_agent_prediction(wallet.agent_id, address, round_obj, wallet.balance, rng)
            run.predictions.append(prediction)

            if prediction.will_bet and prediction.prediction:
                BetLedger.place_bet(
                    db,
                    address,
                    personality.name,
                    prediction.prediction,
                    prediction.amount,
                    now_ms=now,
                )
                run.successful_bets.append(prediction)

        except CoinflipException as e:
            run.errors.append(f"{personality.name}: {e}")

    logger.info(
        f"[AgentPredict] {len(run.successful_bets)} agents placed bets, "
        f"{len(run.errors)} errors (round {run.round_id})"
    )
    return run
