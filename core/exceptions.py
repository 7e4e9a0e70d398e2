"""
自定義異常類別

集中管理所有業務邏輯異常，方便 API 層統一處理

錯誤種類（每一種對應一個不同的 HTTP status，見 api/errors.py）：
- NotFound：未知的 game / participant / code
- IllegalState：操作與目前狀態不符（例如沒有可處理的 claim）
- PhaseError：只能在特定階段執行的操作在錯誤階段被呼叫（IllegalState 的子類）
- Conflict：已有尚未處理的 claim
- InsufficientPlayers：階段轉換時玩家不足
"""


class ChainGameException(Exception):
    """所有遊戲異常的基類"""
    pass


# ============ NotFound ============

class NotFound(ChainGameException):
    """找不到指定的資料"""
    pass


class GameNotFound(NotFound):
    """遊戲不存在"""
    def __init__(self, game_id):
        self.game_id = game_id
        super().__init__(f"Game {game_id} not found")


class ParticipantNotFound(NotFound):
    """玩家不存在（或已被移除）"""
    def __init__(self, participant_id):
        self.participant_id = participant_id
        super().__init__(f"Participant {participant_id} not found")


# ============ 狀態相關異常 ============

class IllegalState(ChainGameException):
    """操作與目前的遊戲或 claim 狀態不符"""
    pass


class PhaseError(IllegalState):
    """操作不允許在目前的遊戲階段執行"""
    def __init__(self, operation, phase):
        self.operation = operation
        self.phase = phase
        super().__init__(f"{operation} is not allowed while game is {phase.value}")


class Conflict(ChainGameException):
    """與其他尚未完成的操作衝突"""
    pass


class ClaimAlreadyPending(Conflict):
    """目標已經有一個等待確認的 claim"""
    def __init__(self, target_id):
        self.target_id = target_id
        super().__init__(f"Participant {target_id} already has a pending claim")


class InsufficientPlayers(ChainGameException):
    """玩家數量不足以開始遊戲（至少需要 2 位已登入的玩家）"""
    def __init__(self, required, actual):
        self.required = required
        self.actual = actual
        super().__init__(f"Need at least {required} joined players, got {actual}")


# ============ 內部錯誤 ============

class ChainIntegrityError(ChainGameException):
    """寫入後目標鏈不再是單一循環（程式錯誤，transaction 會被 rollback）"""
    pass
