from sqlalchemy import create_engine, event
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.orm.exc import StaleDataError
from pydantic_settings import BaseSettings
from functools import lru_cache, wraps
import logging

from core.exceptions import CoinflipException

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    database_url: str = "sqlite:///./coinflip.db"

    # 回合設定（55 分鐘下注 + 5 分鐘執行 = 每小時一回合）
    betting_window_ms: int = 55 * 60 * 1000
    min_bet_amount: str = "10"
    max_bet_amount: str = "1000"
    token_symbol: str = "EMPTOURS"

    # 安慰獎：base * (1..max_multiplier)
    consolation_base_amount: str = "1"
    consolation_max_multiplier: int = 5

    round_history_limit: int = 100

    # 沒有贏家時彩池的去向：treasury（保留給莊家）或 refund（全數退還）
    unclaimed_pool_policy: str = "treasury"

    # 寫入衝突重試：第 n 次失敗後等 min(max, base * 2^(n-1))，再乘上 jitter
    conflict_retry_attempts: int = 5
    conflict_retry_base_delay_ms: int = 10
    conflict_retry_max_delay_ms: int = 200

    # 回合結束前多久不再讓 AI agent 下注
    agent_cutoff_ms: int = 2 * 60 * 1000

    # 空字串表示不檢查（本機開發）
    admin_api_key: str = ""

    # 每個 client IP 的請求上限（固定時間窗）
    rate_limit_enabled: bool = True
    bet_rate_limit_requests: int = 5
    bet_rate_limit_window_s: int = 60
    status_rate_limit_requests: int = 30
    status_rate_limit_window_s: int = 10

    class Config:
        env_file = ".env"


@lru_cache()
def get_settings():
    return Settings()


def create_db_engine(database_url: str):
    """
    建立 engine

    SQLite：
    - check_same_thread=False：FastAPI 的 threadpool 會跨執行緒使用連線
    - 每個 transaction 以 BEGIN IMMEDIATE 開始，一開始就拿寫入鎖，
      同時下注的請求在資料庫層排隊，而不是各自讀到同一個 version 再互相衝突
    - SQLite 會忽略 FOR UPDATE，所以這是 SQLite 上唯一的悲觀鎖

    其他資料庫：靠 with_for_update() 行級鎖
    """
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, pool_pre_ping=True)

    engine = create_engine(
        database_url,
        connect_args={"check_same_thread": False, "timeout": 30},
        pool_pre_ping=True
    )

    @event.listens_for(engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        # 關掉 pysqlite 自己發的 BEGIN，交給下面的 begin event
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


settings = get_settings()

engine = create_db_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """
    FastAPI dependency：每個請求一個 Session

    請求結束時關閉（未 commit 的讀取 transaction 會 rollback，釋放 SQLite 寫入鎖）
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def transactional(func):
    """
    Transaction decorator：一個 coinflip 操作 = 一個 transaction

    用法（retry_on_conflict 一定在外層）：
        @retry_on_conflict
        @transactional
        def _record_bet(db: Session, round_id, ...):
            round_obj = with_round_lock(round_id, db).first()
            ...

    成功 → commit
    失敗 → rollback 後重新拋出：
        - CoinflipException（重複下注、已關盤等）：正常的業務拒絕，INFO
        - StaleDataError / IntegrityError：寫入衝突，WARNING，由 retry_on_conflict 重跑
        - 其他：ERROR + traceback

    注意：
        - 第一個參數必須是 db: Session
        - 函式內不要自己 commit；內部 helper（start_round、accumulate_agent_stats）只 flush
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        # 找出 db session（可能在 args 或 kwargs）
        db = None
        if args and isinstance(args[0], Session):
            db = args[0]
        elif 'db' in kwargs:
            db = kwargs['db']

        if db is None:
            raise ValueError(
                f"@transactional requires 'db: Session' as first argument, "
                f"but got args={args}, kwargs={kwargs}"
            )

        try:
            result = func(*args, **kwargs)
            db.commit()
            return result
        except CoinflipException as e:
            logger.info(f"{func.__name__} rejected: {e.__class__.__name__}: {e}")
            db.rollback()
            raise
        except (StaleDataError, IntegrityError) as e:
            logger.warning(f"Write conflict in {func.__name__}: {e.__class__.__name__}")
            db.rollback()
            raise
        except Exception as e:
            logger.error(f"Transaction failed in {func.__name__}: {e}", exc_info=True)
            db.rollback()
            raise

    return wrapper
