"""
狀態機：集中管理 Round 的所有狀態轉換

    open ──> closed ──> executing ──> resolved
               │                         ▲
               └─────────────────────────┘

- open -> closed：下注時間結束（lazy）或 close_betting()
- closed -> executing：外部 flip transaction 送出中
- closed/executing -> resolved：resolve_round()，或 force_reset_round() 封存卡住的回合
- open -> resolved：只允許 force reset（空回合直接封存）

所有狀態變更都要經過這裡，不要直接改 round.status。
"""
import logging

from models import Round, RoundStatus
from core.exceptions import InvalidStateTransition

logger = logging.getLogger(__name__)


class RoundStateMachine:
    """Round 狀態機"""

    TRANSITIONS = {
        RoundStatus.OPEN: {RoundStatus.CLOSED},
        RoundStatus.CLOSED: {RoundStatus.EXECUTING, RoundStatus.RESOLVED},
        RoundStatus.EXECUTING: {RoundStatus.RESOLVED},
        RoundStatus.RESOLVED: set(),
    }

    # force reset 額外允許的轉換
    FORCED_TRANSITIONS = {
        RoundStatus.OPEN: {RoundStatus.RESOLVED},
    }

    @classmethod
    def can_transition(cls, current: RoundStatus, target: RoundStatus, forced: bool = False) -> bool:
        allowed = cls.TRANSITIONS.get(current, set())
        if forced:
            allowed = allowed | cls.FORCED_TRANSITIONS.get(current, set())
        return target in allowed

    @classmethod
    def transition(cls, round_obj: Round, target: RoundStatus, forced: bool = False) -> Round:
        """
        轉換 Round 狀態

        參數：
            round_obj: 已經鎖定（或在同一個 transaction 內讀取）的 Round
            target: 目標狀態
            forced: 是否為管理員 force reset

        返回：
            同一個 Round（狀態已更新，尚未 commit）

        異常：
            InvalidStateTransition: 不合法的轉換
        """
        current = round_obj.status
        if not cls.can_transition(current, target, forced=forced):
            raise InvalidStateTransition(
                f"Round {round_obj.id}: cannot transition from "
                f"{current.value} to {target.value}"
            )

        round_obj.status = target
        logger.info(f"Round {round_obj.id}: {current.value} -> {target.value}")
        return round_obj
