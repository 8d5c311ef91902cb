"""
回合階段服務：下注時間窗的判斷

時間一律是 ms since epoch。核心沒有背景時鐘，
每次讀取時拿儲存的時間戳和「現在」比較（lazy）。
"""
import time

from models import Round, RoundStatus


def current_time_ms() -> int:
    return int(time.time() * 1000)


def betting_window_ended(round_obj: Round, now_ms: int) -> bool:
    """
    下注時間是否已過

    注意：
        now == closes_at 仍然可以下注（嚴格大於才算結束）
    """
    return now_ms > round_obj.closes_at


def is_betting_open(round_obj: Round, now_ms: int) -> bool:
    """狀態是 open 且還在下注時間內"""
    return round_obj.status == RoundStatus.OPEN and not betting_window_ended(round_obj, now_ms)


def time_remaining_ms(round_obj: Round, now_ms: int) -> int:
    return max(0, round_obj.closes_at - now_ms)


def format_time_remaining(ms: int) -> str:
    """
    範例：
        format_time_remaining(125_000) -> "2m 5s"
    """
    minutes = ms // 60000
    seconds = (ms % 60000) // 1000
    return f"{minutes}m {seconds}s"
