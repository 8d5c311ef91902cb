"""
Rate limit service：每個 client 的固定時間窗請求上限

規則：
- client 第一次請求時開一個時間窗（window_s 秒）
- 時間窗內第 max_requests + 1 次起拒絕，直到時間窗結束
- 時間窗結束後重新計數

狀態只存在這個 process 的記憶體裡（多 worker 部署時各算各的）
"""
from dataclasses import dataclass
from typing import Callable, Dict, Tuple
import math
import threading
import time


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    # 距離時間窗結束的秒數（無條件進位）
    reset_in: int


class FixedWindowRateLimiter:
    """
    固定時間窗計數器（thread-safe）

    參數：
        max_requests: 每個時間窗允許的請求數
        window_s: 時間窗長度（秒）
        clock: 測試用，預設 time.monotonic
    """

    def __init__(self, max_requests: int, window_s: int, clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_s = window_s
        self._clock = clock
        self._lock = threading.Lock()
        # identifier -> (時間窗開始, 已使用次數)
        self._windows: Dict[str, Tuple[float, int]] = {}

    def check(self, identifier: str) -> RateLimitResult:
        """記一次請求並回傳是否允許"""
        with self._lock:
            now = self._clock()
            started, count = self._windows.get(identifier, (now, 0))
            if now - started >= self.window_s:
                started, count = now, 0

            count += 1
            self._windows[identifier] = (started, count)
            self._evict(now)

            return RateLimitResult(
                allowed=count <= self.max_requests,
                remaining=max(0, self.max_requests - count),
                reset_in=max(1, math.ceil(self.window_s - (now - started))),
            )

    def _evict(self, now: float):
        expired = [k for k, (started, _) in self._windows.items() if now - started >= self.window_s]
        for key in expired:
            del self._windows[key]


_limiters: Dict[Tuple[str, int, int], FixedWindowRateLimiter] = {}
_registry_lock = threading.Lock()


def get_limiter(name: str, max_requests: int, window_s: int) -> FixedWindowRateLimiter:
    """同一組 (name, 上限, 時間窗) 共用一個 limiter"""
    key = (name, max_requests, window_s)
    with _registry_lock:
        limiter = _limiters.get(key)
        if limiter is None:
            limiter = FixedWindowRateLimiter(max_requests, window_s)
            _limiters[key] = limiter
        return limiter


def reset_limiters():
    with _registry_lock:
        _limiters.clear()
