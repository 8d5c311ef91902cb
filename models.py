"""
資料模型

Round / Bet / AgentStats 以及兩個「類 list」結構：
- CoinflipState：目前回合的指標（singleton row）
- RoundHistoryEntry：已結算回合的歷史（最新在前，有長度上限）

金額一律以十進位字串儲存（18 位小數語意），計算時轉成整數 minor units，
見 services/amount_service.py。
"""
import enum

from sqlalchemy import (
    BigInteger,
    Column,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from database import Base


class RoundStatus(str, enum.Enum):
    OPEN = "open"
    CLOSED = "closed"
    EXECUTING = "executing"
    RESOLVED = "resolved"


class Prediction(str, enum.Enum):
    HEADS = "heads"
    TAILS = "tails"


class UnclaimedPoolPolicy(str, enum.Enum):
    TREASURY = "treasury"
    REFUND = "refund"


CURRENT_ROUND_KEY = "current"


class Round(Base):
    __tablename__ = "coinflip_rounds"

    id = Column(String(64), primary_key=True)
    status = Column(SQLEnum(RoundStatus), nullable=False, default=RoundStatus.OPEN)

    # ms since epoch
    started_at = Column(BigInteger, nullable=False)
    closes_at = Column(BigInteger, nullable=False)
    resolved_at = Column(BigInteger, nullable=True)

    total_heads = Column(String(80), nullable=False, default="0")
    total_tails = Column(String(80), nullable=False, default="0")

    result = Column(SQLEnum(Prediction), nullable=True)
    flip_tx_hash = Column(String(80), nullable=True)

    # 樂觀鎖：UPDATE ... WHERE version = :old，沒更新到任何 row 就是 StaleDataError
    version = Column(Integer, nullable=False)

    bets = relationship(
        "Bet",
        back_populates="round",
        order_by="Bet.seq",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<Round {self.id} status={self.status.value if self.status else None}>"


class Bet(Base):
    __tablename__ = "coinflip_bets"
    __table_args__ = (
        # 同一回合同一地址只能有一筆（最後一道防線）
        UniqueConstraint("round_id", "participant_address", name="uq_bet_round_participant"),
    )

    # 插入順序 = 到達順序
    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(64), unique=True, nullable=False)
    round_id = Column(String(64), ForeignKey("coinflip_rounds.id"), nullable=False, index=True)
    participant_address = Column(String(42), nullable=False)
    participant_name = Column(String(120), nullable=False, default="")
    prediction = Column(SQLEnum(Prediction), nullable=False)
    amount = Column(String(80), nullable=False)
    timestamp = Column(BigInteger, nullable=False)

    round = relationship("Round", back_populates="bets")


class CoinflipState(Base):
    __tablename__ = "coinflip_state"

    key = Column(String(32), primary_key=True, default=CURRENT_ROUND_KEY)
    round_id = Column(String(64), ForeignKey("coinflip_rounds.id"), nullable=True)
    version = Column(Integer, nullable=False)

    round = relationship("Round")

    __mapper_args__ = {"version_id_col": version}


class RoundHistoryEntry(Base):
    __tablename__ = "coinflip_round_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    round_id = Column(String(64), ForeignKey("coinflip_rounds.id"), nullable=False)
    created_at = Column(BigInteger, nullable=False)


class AgentStats(Base):
    __tablename__ = "coinflip_agent_stats"

    address = Column(String(42), primary_key=True)
    total_bets = Column(Integer, nullable=False, default=0)
    wins = Column(Integer, nullable=False, default=0)
    losses = Column(Integer, nullable=False, default=0)
    total_wagered = Column(String(80), nullable=False, default="0")
    total_won = Column(String(80), nullable=False, default="0")
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
