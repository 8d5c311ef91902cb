"""
派彩服務：Parimutuel（彩池制）結算邏輯

純計算邏輯，不寫資料庫，不改 Round 狀態（由 RoundManager 負責）

彩池制規則：
- 猜中的一方（winners）拿回本金，並依本金比例瓜分猜錯一方（losers）的彩池
- share = losing_pool * stake // winning_pool（整數除法，無條件捨去）
- 捨去產生的零頭（dust）不會消失，記在 RoundResult.unclaimed_pool，歸 treasury

範例：
    alice 100 heads, bob 50 tails, carol 50 heads，結果 heads
    winning_pool = 150, losing_pool = 50
    alice: 100 + 50 * 100 / 150 = 133.333...
    carol:  50 + 50 *  50 / 150 =  66.666...
    bob: 沒有派彩，但有安慰獎
"""
from dataclasses import dataclass, field
from typing import List, Optional

from web3 import Web3

from database import get_settings
from models import Bet, Prediction, Round, UnclaimedPoolPolicy
from services.amount_service import format_amount, parse_amount


@dataclass
class Payout:
    participant_address: str
    participant_name: str
    bet_amount: str
    winnings: str
    total_payout: str


@dataclass
class ConsolationPrize:
    participant_address: str
    participant_name: str
    amount: str
    multiplier: int


@dataclass
class RoundResult:
    round_id: str
    result: Prediction
    flip_tx_hash: str
    total_pool: str
    heads_bets: int
    tails_bets: int
    winners: List[Payout] = field(default_factory=list)
    losers: List[str] = field(default_factory=list)
    # 沒有派出去的部分：整數除法的零頭，或沒有贏家時（treasury）整個彩池
    unclaimed_pool: str = "0"
    pool_policy: UnclaimedPoolPolicy = UnclaimedPoolPolicy.TREASURY
    refunds: List[Payout] = field(default_factory=list)


def split_bets(round_obj: Round, outcome: Prediction):
    """依結果把下注分成 (winners, losers)，保持下注順序"""
    winners = [b for b in round_obj.bets if b.prediction == outcome]
    losers = [b for b in round_obj.bets if b.prediction != outcome]
    return winners, losers


def _pool(bets: List[Bet]) -> int:
    return sum(parse_amount(b.amount) for b in bets)


def calculate_payouts(round_obj: Round, outcome: Prediction) -> List[Payout]:
    """
    計算贏家派彩

    流程：
    1. 分出 winners / losers
    2. 沒有贏家 → 回傳空 list（彩池去向由 unclaimed pool policy 決定）
    3. 算 winning_pool / losing_pool（minor units）
    4. 每個贏家：share = losing_pool * stake // winning_pool

    參數：
        round_obj: 回合（只讀 bets）
        outcome: 開出的結果

    返回：
        Payout list（順序與下注順序相同）
    """
    winners, losers = split_bets(round_obj, outcome)
    if not winners:
        return []

    winning_pool = _pool(winners)
    losing_pool = _pool(losers)

    payouts = []
    for bet in winners:
        stake = parse_amount(bet.amount)
        share = losing_pool * stake // winning_pool
        payouts.append(Payout(
            participant_address=bet.participant_address,
            participant_name=bet.participant_name,
            bet_amount=bet.amount,
            winnings=format_amount(share),
            total_payout=format_amount(stake + share),
        ))

    return payouts


def calculate_dust(round_obj: Round, outcome: Prediction) -> int:
    """
    整數除法捨去的零頭（minor units）

    沒有贏家時回傳 0（整個彩池的去向另外處理）
    """
    payouts = calculate_payouts(round_obj, outcome)
    if not payouts:
        return 0

    _, losers = split_bets(round_obj, outcome)
    distributed = sum(parse_amount(p.winnings) for p in payouts)
    return _pool(losers) - distributed


def calculate_refunds(round_obj: Round, outcome: Prediction) -> List[Payout]:
    """
    沒有贏家時的退款（只在 refund policy 下使用）

    有贏家時回傳空 list
    """
    winners, _ = split_bets(round_obj, outcome)
    if winners:
        return []

    return [
        Payout(
            participant_address=bet.participant_address,
            participant_name=bet.participant_name,
            bet_amount=bet.amount,
            winnings="0",
            total_payout=bet.amount,
        )
        for bet in round_obj.bets
    ]


def build_round_result(
    round_obj: Round,
    outcome: Prediction,
    tx_ref: str,
    policy: UnclaimedPoolPolicy = UnclaimedPoolPolicy.TREASURY,
) -> RoundResult:
    """
    組出完整的回合結果

    total_pool 取結算當下的 total_heads + total_tails
    """
    payouts = calculate_payouts(round_obj, outcome)
    _, losers = split_bets(round_obj, outcome)
    total_pool = parse_amount(round_obj.total_heads) + parse_amount(round_obj.total_tails)

    refunds: List[Payout] = []
    if payouts:
        unclaimed = calculate_dust(round_obj, outcome)
    elif policy == UnclaimedPoolPolicy.REFUND:
        refunds = calculate_refunds(round_obj, outcome)
        unclaimed = 0
    else:
        unclaimed = total_pool

    return RoundResult(
        round_id=round_obj.id,
        result=outcome,
        flip_tx_hash=tx_ref,
        total_pool=format_amount(total_pool),
        heads_bets=sum(1 for b in round_obj.bets if b.prediction == Prediction.HEADS),
        tails_bets=sum(1 for b in round_obj.bets if b.prediction == Prediction.TAILS),
        winners=payouts,
        losers=[b.participant_address for b in losers],
        unclaimed_pool=format_amount(unclaimed),
        pool_policy=policy,
        refunds=refunds,
    )


def consolation_multiplier(tx_ref: str, address: str, max_multiplier: int) -> int:
    """
    由 (tx_ref, address) 決定的安慰獎倍數，範圍 [1, max_multiplier]

    seed = keccak256("<tx_ref>:<address>")，取最後一個 byte mod max_multiplier 再 +1
    同樣的輸入永遠得到同樣的倍數（可稽核），與呼叫順序、時間無關
    """
    seed = Web3.keccak(text=f"{tx_ref}:{address}")
    return (seed[-1] % max_multiplier) + 1


def calculate_consolation_prizes(
    round_obj: Round,
    outcome: Prediction,
    tx_ref: str,
    base_amount: Optional[str] = None,
    max_multiplier: Optional[int] = None,
) -> List[ConsolationPrize]:
    """
    計算輸家的安慰獎

    每個輸家：amount = base_amount * multiplier

    參數：
        base_amount / max_multiplier: 預設讀 Settings
    """
    if base_amount is None or max_multiplier is None:
        settings = get_settings()
        base_amount = base_amount if base_amount is not None else settings.consolation_base_amount
        max_multiplier = max_multiplier if max_multiplier is not None else settings.consolation_max_multiplier

    base = parse_amount(base_amount)
    _, losers = split_bets(round_obj, outcome)

    prizes = []
    for bet in losers:
        multiplier = consolation_multiplier(tx_ref, bet.participant_address, max_multiplier)
        prizes.append(ConsolationPrize(
            participant_address=bet.participant_address,
            participant_name=bet.participant_name,
            amount=format_amount(base * multiplier),
            multiplier=multiplier,
        ))

    return prizes
