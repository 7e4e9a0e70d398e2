"""
遊戲階段狀態機：集中管理所有階段轉換

合法轉換：
    SETUP    --start_game-->  ACTIVE
    ACTIVE   --只剩一人----->  FINISHED（自動，由 EliminationManager 觸發）
    ACTIVE   --reset------->  SETUP（放棄本局）
    FINISHED --reset------->  SETUP
    SETUP    --reset------->  SETUP

其他轉換一律拋出 PhaseError
"""
import logging

from sqlalchemy.orm import Session

from models import Game, GamePhase
from core.exceptions import PhaseError
from services.state_service import bump_state_version

logger = logging.getLogger(__name__)


class GameStateMachine:
    """Game 階段轉換"""

    TRANSITIONS = {
        GamePhase.SETUP: {GamePhase.ACTIVE, GamePhase.SETUP},
        GamePhase.ACTIVE: {GamePhase.FINISHED, GamePhase.SETUP},
        GamePhase.FINISHED: {GamePhase.SETUP},
    }

    @classmethod
    def can_transition(cls, current: GamePhase, target: GamePhase) -> bool:
        return target in cls.TRANSITIONS.get(current, set())

    @classmethod
    def transition(cls, game: Game, target: GamePhase, db: Session) -> Game:
        """
        轉換遊戲階段（會自動記錄 GAME_PHASE_CHANGED 事件）

        參數：
            game: 已鎖定的 Game
            target: 目標階段
            db: SQLAlchemy Session

        異常：
            PhaseError: 非法的轉換
        """
        current = game.phase
        if not cls.can_transition(current, target):
            raise PhaseError(f"transition to {target.value}", current)

        game.phase = target
        bump_state_version(
            db, game, "GAME_PHASE_CHANGED",
            {"from": current.value, "to": target.value}
        )
        logger.info(f"Game {game.id} phase {current.value} -> {target.value}")
        return game


def require_phase(game: Game, operation: str, *allowed: GamePhase) -> None:
    """操作只允許在 allowed 階段執行，否則拋出 PhaseError"""
    if game.phase not in allowed:
        raise PhaseError(operation, game.phase)
