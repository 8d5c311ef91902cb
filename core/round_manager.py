"""
Round Manager：管理 Round 的完整生命週期

職責：
1. 取得 / 建立目前回合（lazy 關閉下注）
2. 狀態轉換：close_betting / mark_executing / resolve_round
3. 管理員救援：force_reset_round
4. 查詢回合與歷史

原則：
- 「目前回合」只有一個指標（CoinflipState），所有切換都經過這裡
- 所有狀態變更經過 RoundStateMachine
- 每個 public 操作都是 @retry_on_conflict + @transactional：
  讀取 → 檢查 → 寫入，衝突就整個重來
- 「這個狀態下不需要做事」回傳 None，不是錯誤
"""
from sqlalchemy.orm import Session
from typing import List, Optional, Tuple
import logging

from models import (
    Round,
    RoundStatus,
    Prediction,
    CoinflipState,
    UnclaimedPoolPolicy,
    CURRENT_ROUND_KEY,
)
from core.state_machine import RoundStateMachine
from core.locks import with_state_lock, with_round_lock, retry_on_conflict
from core.exceptions import InvalidPrediction
from services.naming_service import generate_round_id, with_suffix
from services.round_phase_service import current_time_ms, betting_window_ended
from services.payout_service import RoundResult, build_round_result
from services import history_service
from database import transactional, get_settings

logger = logging.getLogger(__name__)


def parse_prediction(value) -> Prediction:
    """'heads' / 'tails'（不分大小寫）-> Prediction"""
    if isinstance(value, Prediction):
        return value
    try:
        return Prediction(str(value).strip().lower())
    except ValueError:
        raise InvalidPrediction(value)


class RoundManager:
    """Round 生命週期管理器"""

    # ============ 內部操作（不 commit，由外層 transaction 負責） ============

    @staticmethod
    def lock_current(db: Session) -> Tuple[Optional[CoinflipState], Optional[Round]]:
        """鎖定目前回合指標與目前回合"""
        state = with_state_lock(db).first()
        if state is None or state.round_id is None:
            return state, None
        return state, with_round_lock(state.round_id, db).first()

    @staticmethod
    def start_round(db: Session, state: Optional[CoinflipState], now_ms: int) -> Round:
        """
        建立新回合並把目前回合指標指過去

        ID 規則：
        1. 以 UTC 日期 + 小時為基礎（round_YYYYMMDD_HH）
        2. 同 ID 的回合若是「open 且沒有下注」→ 重複建立，直接覆寫時間（last write wins）
        3. 其他情況（已結算、已有下注）→ 加後綴 _2, _3 ...

        併發兩個請求同時 INSERT 同一個 ID 時，後者撞 primary key →
        IntegrityError → retry_on_conflict 重跑，第二次會走到規則 2
        """
        settings = get_settings()
        base_id = generate_round_id(now_ms)

        n = 1
        while True:
            candidate = with_suffix(base_id, n)
            existing = with_round_lock(candidate, db).first()

            if existing is None:
                round_obj = Round(
                    id=candidate,
                    status=RoundStatus.OPEN,
                    started_at=now_ms,
                    closes_at=now_ms + settings.betting_window_ms,
                    total_heads="0",
                    total_tails="0",
                )
                db.add(round_obj)
                break

            if existing.status == RoundStatus.OPEN and not existing.bets:
                logger.warning(f"Round {candidate} already exists and is empty, reusing it")
                existing.started_at = now_ms
                existing.closes_at = now_ms + settings.betting_window_ms
                round_obj = existing
                break

            n += 1

        if state is None:
            state = CoinflipState(key=CURRENT_ROUND_KEY, round_id=round_obj.id)
            db.add(state)
        else:
            state.round_id = round_obj.id

        db.flush()

        logger.info(f"New round created: {round_obj.id}")
        return round_obj

    @staticmethod
    def resolve_current(
        db: Session,
        outcome: Prediction,
        tx_ref: str,
        now_ms: int,
    ) -> Tuple[Optional[Round], Optional[RoundResult]]:
        """結算目前回合（不 commit）"""
        settings = get_settings()
        _, round_obj = RoundManager.lock_current(db)

        if round_obj is None or round_obj.status not in (RoundStatus.CLOSED, RoundStatus.EXECUTING):
            return round_obj, None

        policy = UnclaimedPoolPolicy(settings.unclaimed_pool_policy)
        result = build_round_result(round_obj, outcome, tx_ref, policy)

        RoundStateMachine.transition(round_obj, RoundStatus.RESOLVED)
        round_obj.result = outcome
        round_obj.flip_tx_hash = tx_ref
        round_obj.resolved_at = now_ms

        history_service.push_round_history(db, round_obj.id, now_ms, settings.round_history_limit)

        logger.info(
            f"Round {round_obj.id} resolved: {outcome.value.upper()} "
            f"(pool={result.total_pool}, winners={len(result.winners)}, losers={len(result.losers)})"
        )
        return round_obj, result

    # ============ Public API ============

    @staticmethod
    @retry_on_conflict
    @transactional
    def get_or_create_current_round(db: Session, now_ms: Optional[int] = None) -> Round:
        """
        取得目前回合；沒有或已結算就建立新的

        流程：
        1. 鎖定目前回合指標
        2. 沒有回合、或回合已 resolved → 建立新回合
        3. 回合是 open 但已超過 closes_at → 轉成 closed（讀取的副作用）

        參數：
            db: SQLAlchemy Session
            now_ms: 測試用，預設為現在時間

        返回：
            目前回合
        """
        now = now_ms if now_ms is not None else current_time_ms()
        state, round_obj = RoundManager.lock_current(db)

        if round_obj is None or round_obj.status == RoundStatus.RESOLVED:
            round_obj = RoundManager.start_round(db, state, now)

        if round_obj.status == RoundStatus.OPEN and betting_window_ended(round_obj, now):
            RoundStateMachine.transition(round_obj, RoundStatus.CLOSED)

        return round_obj

    @staticmethod
    @retry_on_conflict
    @transactional
    def create_new_round(db: Session, now_ms: Optional[int] = None) -> Round:
        """
        無條件建立新回合（open），並設為目前回合

        注意：
            舊的目前回合不會被改動；要封存卡住的回合請用 force_reset_round
        """
        now = now_ms if now_ms is not None else current_time_ms()
        state = with_state_lock(db).first()
        return RoundManager.start_round(db, state, now)

    @staticmethod
    @retry_on_conflict
    @transactional
    def close_betting(db: Session) -> Optional[Round]:
        """
        停止下注（open -> closed）

        返回：
            更新後的 Round；目前回合不是 open 則回傳 None
        """
        _, round_obj = RoundManager.lock_current(db)
        if round_obj is None or round_obj.status != RoundStatus.OPEN:
            return None

        RoundStateMachine.transition(round_obj, RoundStatus.CLOSED)
        logger.info(f"Betting closed for round {round_obj.id}")
        return round_obj

    @staticmethod
    @retry_on_conflict
    @transactional
    def mark_executing(db: Session) -> Optional[Round]:
        """
        標記外部 flip transaction 進行中（closed -> executing）

        返回：
            更新後的 Round；目前回合不是 closed 則回傳 None
        """
        _, round_obj = RoundManager.lock_current(db)
        if round_obj is None or round_obj.status != RoundStatus.CLOSED:
            return None

        return RoundStateMachine.transition(round_obj, RoundStatus.EXECUTING)

    @staticmethod
    @retry_on_conflict
    @transactional
    def resolve_round(
        db: Session,
        outcome,
        tx_ref: str,
        now_ms: Optional[int] = None,
    ) -> Optional[RoundResult]:
        """
        以外部 oracle 給的結果結算目前回合

        前置條件：
            回合狀態必須是 closed 或 executing

        效果：
            status=resolved, result, flip_tx_hash, resolved_at
            回合 ID 推入歷史（最新在前，超過上限的剔除）

        返回：
            RoundResult；回合不存在、還是 open、或已結算則回傳 None
            （重試的 cron 呼叫第二次是安全的 no-op）
        """
        outcome = parse_prediction(outcome)
        now = now_ms if now_ms is not None else current_time_ms()
        _, result = RoundManager.resolve_current(db, outcome, tx_ref, now)
        return result

    @staticmethod
    @retry_on_conflict
    @transactional
    def force_reset_round(db: Session, now_ms: Optional[int] = None) -> Round:
        """
        管理員救援：封存卡住的回合並開新回合

        使用場景：
            外部 flip transaction 一直沒確認，回合卡在 closed / executing

        流程：
        1. 在鎖內重新檢查目前回合狀態（可能剛好被正常結算了）
        2. 已 resolved → 保留結果，不動它
        3. 其他（open / closed / executing，不論有沒有下注）→ 強制轉成 resolved（沒有 result）
        4. 建立新回合

        返回：
            open 的新回合
        """
        now = now_ms if now_ms is not None else current_time_ms()
        state, round_obj = RoundManager.lock_current(db)

        if round_obj is not None and round_obj.status != RoundStatus.RESOLVED:
            RoundStateMachine.transition(round_obj, RoundStatus.RESOLVED, forced=True)
            round_obj.result = None
            round_obj.resolved_at = now
            logger.warning(
                f"Force reset stuck round: {round_obj.id} ({len(round_obj.bets)} bets archived)"
            )

        return RoundManager.start_round(db, state, now)

    @staticmethod
    def get_round(db: Session, round_id: str) -> Optional[Round]:
        return db.query(Round).filter(Round.id == round_id).first()

    @staticmethod
    def get_round_history(db: Session, limit: int = 10) -> List[Round]:
        return history_service.get_round_history(db, limit)
