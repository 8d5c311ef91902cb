"""
並發控制工具

兩層保護，防止競態條件（Race Condition）：

1. 悲觀鎖：PostgreSQL 的 SELECT ... FOR UPDATE；
   SQLite 會忽略 FOR UPDATE，改由 BEGIN IMMEDIATE 拿整個資料庫的寫入鎖
   （見 database.create_db_engine）
2. 樂觀鎖：Round / CoinflipState / AgentStats 都有 version_id_col，
   別人先寫入的話 UPDATE 會更新到 0 筆 → StaleDataError；
   重複的 Bet / Round 會撞 unique constraint → IntegrityError

第二層在任何 backend 都有效。衝突時由 retry_on_conflict 重跑整個操作
（重新讀取 → 重新檢查 → 重新寫入），所以操作要嘛完整套用、要嘛完全沒發生。
"""
from functools import wraps
import logging
import random
import time

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, Query
from sqlalchemy.orm.exc import StaleDataError

from models import Round, CoinflipState, AgentStats, CURRENT_ROUND_KEY
from core.exceptions import WriteConflict
from database import get_settings

logger = logging.getLogger(__name__)


def with_state_lock(db: Session) -> Query:
    """
    鎖定「目前回合」指標（行級鎖）

    使用場景：
    - 建立新回合、切換目前回合時
    - 確保同一時間只有一個請求在決定「誰是目前回合」

    返回：
        Query object（需要呼叫 .first() 取得結果）
    """
    return db.query(CoinflipState).filter(
        CoinflipState.key == CURRENT_ROUND_KEY
    ).with_for_update(nowait=False)


def with_round_lock(round_id: str, db: Session) -> Query:
    """
    鎖定一個 Round（行級鎖）

    使用場景：
    - 下注（檢查重複 + 更新總額）
    - 狀態轉換、結算（防止重複結算）

    範例：
        round_obj = with_round_lock(round_id, db).first()
        if round_obj and round_obj.status == RoundStatus.OPEN:
            round_obj.status = RoundStatus.CLOSED
            db.commit()

    注意：
        - nowait=False 表示如果鎖被佔用，會等待
        - 必須在 transaction 內使用（確保有 commit 或 rollback）
    """
    return db.query(Round).filter(
        Round.id == round_id
    ).with_for_update(nowait=False)


def with_stats_lock(address: str, db: Session) -> Query:
    """鎖定一個 agent 的統計資料"""
    return db.query(AgentStats).filter(
        AgentStats.address == address
    ).with_for_update(nowait=False)


def backoff_delay(attempt: int, base_delay_ms: int, max_delay_ms: int) -> float:
    """第 attempt 次失敗後要等幾秒"""
    ceiling = min(max_delay_ms, base_delay_ms * 2 ** (attempt - 1))
    return ceiling * random.uniform(0.5, 1.0) / 1000


def retry_on_conflict(func):
    """
    寫入衝突時重跑整個 transactional 操作

    必須放在 @transactional 外層：
        @retry_on_conflict
        @transactional
        def place_bet(db, ...):
            ...

    @transactional 已經 rollback，session 內的物件都已 expire，
    重跑時會重新從資料庫讀取最新狀態。

    兩次嘗試之間 sleep（exponential backoff + jitter），
    避免同時失敗的請求又在同一瞬間一起重跑：
        delay = min(max_delay, base_delay * 2^(attempt-1)) * uniform(0.5, 1.0)

    重試次數用完 → WriteConflict
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        settings = get_settings()
        attempts = max(1, settings.conflict_retry_attempts)
        last_error = None

        for attempt in range(1, attempts + 1):
            try:
                return func(*args, **kwargs)
            except (StaleDataError, IntegrityError) as e:
                last_error = e
                logger.warning(
                    f"Write conflict in {func.__name__} "
                    f"(attempt {attempt}/{attempts}): {e.__class__.__name__}"
                )
                if attempt < attempts:
                    time.sleep(backoff_delay(
                        attempt,
                        settings.conflict_retry_base_delay_ms,
                        settings.conflict_retry_max_delay_ms,
                    ))

        raise WriteConflict(
            f"{func.__name__} failed after {attempts} attempts: {last_error}"
        )

    return wrapper
