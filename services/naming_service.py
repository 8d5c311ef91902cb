"""
命名服務：生成 Round ID 和 Bet ID

純計算邏輯，不涉及狀態轉換
"""
import random
import string
from datetime import datetime, timezone


def generate_round_id(now_ms: int) -> str:
    """
    依據 UTC 日期與小時生成回合 ID（每小時一個 bucket）

    範例：2026-10-17 09:30 UTC -> round_20261017_09

    注意：
    - 不檢查唯一性（由 RoundManager 負責，同一小時重複時會加後綴）
    """
    now = datetime.fromtimestamp(now_ms / 1000, tz=timezone.utc)
    return f"round_{now.strftime('%Y%m%d')}_{now.strftime('%H')}"


def with_suffix(base_id: str, n: int) -> str:
    """
    同一小時內的第 n 個回合

    範例：
        with_suffix("round_20261017_09", 1) -> round_20261017_09
        with_suffix("round_20261017_09", 2) -> round_20261017_09_2
    """
    return base_id if n <= 1 else f"{base_id}_{n}"


def generate_bet_id(now_ms: int) -> str:
    """
    生成下注 ID

    格式：bet_<ms>_<6 位 base36>
    範例：bet_1760693400000_k3x9qa

    注意：
    - 36^6 種後綴，同一毫秒碰撞機率極低；真的撞到 unique constraint 時會重試
    """
    suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"bet_{now_ms}_{suffix}"
