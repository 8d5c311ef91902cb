"""
自定義異常類別

集中管理所有業務邏輯異常，方便 API 層統一處理

分三類：
- 驗證錯誤：在碰資料庫之前就拒絕（格式、金額範圍）
- 狀態衝突：目前回合狀態不允許這個操作
- WriteConflict：並發寫入衝突，重試次數用完
"""


class CoinflipException(Exception):
    """所有 coinflip 異常的基類"""
    pass


# ============ 驗證錯誤 ============

class ValidationError(CoinflipException):
    """請求內容不合法（不會有任何狀態變更）"""
    pass


class InvalidAddress(ValidationError):
    """地址格式錯誤（必須是 0x + 40 hex）"""
    def __init__(self, address):
        self.address = address
        super().__init__("Invalid address format")


class InvalidPrediction(ValidationError):
    """預測只能是 heads 或 tails"""
    def __init__(self, prediction):
        self.prediction = prediction
        super().__init__('Prediction must be "heads" or "tails"')


class InvalidAmount(ValidationError):
    """金額無法解析，或不是正數"""
    pass


class BetAmountOutOfRange(ValidationError):
    """金額超出 [min_bet, max_bet]"""
    def __init__(self, message, min_bet, max_bet):
        self.min_bet = min_bet
        self.max_bet = max_bet
        super().__init__(message)


# ============ Round 相關異常 ============

class RoundNotFound(CoinflipException):
    """回合不存在"""
    def __init__(self, round_id):
        self.round_id = round_id
        super().__init__(f"Round {round_id} not found")


class BettingClosed(CoinflipException):
    """回合已停止下注（狀態不是 open，或下注時間已過）"""
    def __init__(self, round_id, message="Betting is closed for this round"):
        self.round_id = round_id
        super().__init__(message)


class BetAlreadyPlaced(CoinflipException):
    """同一地址在同一回合已經下注過"""
    def __init__(self, round_id, address):
        self.round_id = round_id
        self.address = address
        super().__init__("Agent already placed a bet this round")


class RoundAlreadyResolved(CoinflipException):
    """回合已經結算"""
    def __init__(self, round_id):
        self.round_id = round_id
        super().__init__(f"Round {round_id} already resolved")


class TooCloseToRoundEnd(CoinflipException):
    """離回合結束太近，AI agent 不再下注"""
    pass


# ============ 狀態轉換異常 ============

class InvalidStateTransition(CoinflipException):
    """非法的狀態轉換"""
    pass


# ============ 並發 ============

class WriteConflict(CoinflipException):
    """樂觀鎖衝突，重試後仍然失敗"""
    pass
