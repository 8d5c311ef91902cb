"""
Bet Ledger：下注帳本

職責：
1. 驗證下注請求（地址、預測、金額）
2. 把下注寫進目前回合，同時更新 total_heads / total_tails

這是唯一建立 Bet 的地方。

並發安全（同一地址同時送兩筆）：
- 同一個 transaction 內：鎖 Round → 檢查重複 → 新增 Bet → 更新總額
- Round 的 version 欄位 + (round_id, participant_address) unique constraint
  保證兩個請求不會同時成功；輸的那個重跑後會看到已存在的下注 → BetAlreadyPlaced
"""
from sqlalchemy.orm import Session
from typing import Optional
import logging
import re

from models import Bet, Prediction, RoundStatus
from core.locks import with_round_lock, retry_on_conflict
from core.round_manager import RoundManager, parse_prediction
from core.exceptions import (
    InvalidAddress,
    InvalidAmount,
    BetAmountOutOfRange,
    BettingClosed,
    BetAlreadyPlaced,
    RoundNotFound,
)
from services.amount_service import parse_amount, format_amount
from services.naming_service import generate_bet_id
from services.round_phase_service import current_time_ms, betting_window_ended
from database import transactional, get_settings

logger = logging.getLogger(__name__)

ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")


def normalize_address(address) -> str:
    """
    檢查地址格式並轉成小寫

    異常：
        InvalidAddress: 不是 0x + 40 hex
    """
    if not isinstance(address, str) or not ADDRESS_PATTERN.match(address.strip()):
        raise InvalidAddress(address)
    return address.strip().lower()


class BetLedger:
    """下注帳本"""

    @staticmethod
    def place_bet(
        db: Session,
        participant_address: str,
        participant_name: str,
        prediction,
        amount: str,
        now_ms: Optional[int] = None,
    ) -> Bet:
        """
        在目前回合下注

        流程：
        1. 驗證輸入（不碰資料庫）
        2. 取得目前回合（可能因此建立新回合或 lazy 關閉下注）
        3. 在回合鎖內寫入下注（見 _record_bet）

        參數：
            db: SQLAlchemy Session
            participant_address: 0x 地址（不分大小寫）
            participant_name: 顯示名稱
            prediction: "heads" / "tails"
            amount: 十進位字串
            now_ms: 測試用

        返回：
            新建立的 Bet

        異常：
            InvalidAddress / InvalidPrediction / InvalidAmount: 輸入錯誤
            BettingClosed: 回合不是 open 或下注時間已過
            BetAmountOutOfRange: 金額小於 min_bet 或大於 max_bet
            BetAlreadyPlaced: 這個地址本回合已經下注
            WriteConflict: 重試後仍然衝突
        """
        address = normalize_address(participant_address)
        side = parse_prediction(prediction)
        amount_minor = parse_amount(amount)
        if amount_minor <= 0:
            raise InvalidAmount(f"Invalid bet amount: {amount}")

        now = now_ms if now_ms is not None else current_time_ms()
        current = RoundManager.get_or_create_current_round(db, now_ms=now)

        return BetLedger._record_bet(
            db,
            current.id,
            address,
            participant_name or f"Agent-{address[:8]}",
            side,
            amount_minor,
            now,
        )

    @staticmethod
    @retry_on_conflict
    @transactional
    def _record_bet(
        db: Session,
        round_id: str,
        address: str,
        name: str,
        prediction: Prediction,
        amount_minor: int,
        now_ms: int,
    ) -> Bet:
        """
        下注的 critical section

        所有檢查都在鎖內重新做一次：目前回合可能在步驟 2 之後就被關閉或結算
        """
        settings = get_settings()

        round_obj = with_round_lock(round_id, db).first()
        if round_obj is None:
            raise RoundNotFound(round_id)

        # 1. 回合狀態
        if round_obj.status != RoundStatus.OPEN:
            raise BettingClosed(round_id)
        if betting_window_ended(round_obj, now_ms):
            raise BettingClosed(round_id, "Betting window has ended")

        # 2. 金額範圍
        min_bet = parse_amount(settings.min_bet_amount)
        max_bet = parse_amount(settings.max_bet_amount)
        if amount_minor < min_bet:
            raise BetAmountOutOfRange(
                f"Minimum bet is {settings.min_bet_amount} {settings.token_symbol}",
                settings.min_bet_amount,
                settings.max_bet_amount,
            )
        if amount_minor > max_bet:
            raise BetAmountOutOfRange(
                f"Maximum bet is {settings.max_bet_amount} {settings.token_symbol}",
                settings.min_bet_amount,
                settings.max_bet_amount,
            )

        # 3. 一人一注
        if any(b.participant_address.lower() == address for b in round_obj.bets):
            raise BetAlreadyPlaced(round_id, address)

        # 4. 寫入下注 + 更新總額（同一個 transaction）
        bet = Bet(
            id=generate_bet_id(now_ms),
            participant_address=address,
            participant_name=name,
            prediction=prediction,
            amount=format_amount(amount_minor),
            timestamp=now_ms,
        )
        round_obj.bets.append(bet)

        if prediction == Prediction.HEADS:
            round_obj.total_heads = format_amount(parse_amount(round_obj.total_heads) + amount_minor)
        else:
            round_obj.total_tails = format_amount(parse_amount(round_obj.total_tails) + amount_minor)

        db.flush()

        logger.info(
            f"Bet placed: {name} ({address}) bet {bet.amount} "
            f"{settings.token_symbol} on {prediction.value} in round {round_id}"
        )
        return bet
