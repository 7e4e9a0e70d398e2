"""
Game Manager：管理 Game 的完整生命週期（Phase Controller）

職責：
1. 建立 Game
2. 開始遊戲（SETUP -> ACTIVE，建立目標循環）
3. 重置遊戲（任何階段 -> SETUP，清除所有玩家狀態）
4. 查詢 Game 資訊

原則：
- 所有階段變更經過 GameStateMachine
- 所有寫入都在同一把遊戲鎖 + 同一個 transaction 內完成
"""
import random
from typing import Optional
import logging

from sqlalchemy.orm import Session

from models import Game, GamePhase, Participant, EliminationClaim
from core.state_machine import GameStateMachine, require_phase
from core.locks import lock_game, serialized_per_game
from core.exceptions import GameNotFound
from services.chain_service import build_chain, verify_chain
from services.state_service import bump_state_version
from database import transactional, get_settings

logger = logging.getLogger(__name__)


def default_rng() -> random.Random:
    """未注入亂數來源時使用：設定了 chain_seed 就可重現，否則用系統亂數"""
    seed = get_settings().chain_seed
    if seed is not None:
        return random.Random(seed)
    return random.SystemRandom()


class GameManager:
    """Game 生命週期管理器"""

    @staticmethod
    @transactional
    def create_game(db: Session) -> Game:
        """建立新遊戲（SETUP 階段）"""
        game = Game(phase=GamePhase.SETUP, state_version=0)
        db.add(game)
        db.flush()

        bump_state_version(db, game, "GAME_CREATED")
        logger.info(f"Created game {game.id}")
        return game

    @staticmethod
    @serialized_per_game
    @transactional
    def start_game(db: Session, game_id: str, rng: Optional[random.Random] = None) -> Game:
        """
        開始遊戲（狀態轉換 SETUP -> ACTIVE）

        前置條件：
        1. Game 必須存在
        2. Game 狀態必須是 SETUP
        3. 已登入的玩家數量 >= min_players（至少 2）

        流程：
        1. 驗證前置條件
        2. 建立目標循環（Fisher–Yates）
        3. 未登入的玩家不參與本局（標記為非存活，不在目標鏈上）
        4. 透過 StateMachine 轉換狀態並記錄事件

        參數：
            db: SQLAlchemy Session
            game_id: Game ID
            rng: 亂數來源（測試時注入固定 seed）

        異常：
            GameNotFound: Game 不存在
            PhaseError: Game 狀態不是 SETUP
            InsufficientPlayers: 已登入玩家不足
        """
        # 1. 取得並鎖定 Game
        game = lock_game(game_id, db)
        require_phase(game, "start_game", GamePhase.SETUP)

        participants = GameManager.get_participants(db, game_id)
        joined = [p for p in participants if p.has_joined and p.is_alive]

        # 2. 建立目標循環（人數不足會拋出 InsufficientPlayers）
        targets = build_chain(
            [p.id for p in joined],
            rng or default_rng(),
            min_size=get_settings().min_players
        )

        # 3. 寫入目標
        benched = []
        for participant in participants:
            if participant.id in targets:
                participant.target_id = targets[participant.id]
            else:
                participant.is_alive = False
                participant.target_id = None
                benched.append(participant.id)

        if benched:
            logger.info(f"Game {game_id}: {len(benched)} participants never joined and sit out")

        # 4. 狀態轉換 + 事件
        GameStateMachine.transition(game, GamePhase.ACTIVE, db)
        bump_state_version(
            db, game, "GAME_STARTED",
            {"player_count": len(targets), "benched": benched}
        )
        GameManager.check_chain(db, game)

        logger.info(f"Started game {game_id} with {len(targets)} players")
        return game

    @staticmethod
    @serialized_per_game
    @transactional
    def reset_game(db: Session, game_id: str) -> Game:
        """
        重置遊戲（任何階段 -> SETUP）

        效果：
        - 所有玩家：is_alive=True, has_joined=False, target_id=None, last_activity=None
        - 刪除這場遊戲的所有 claim
        - 清除勝利者

        異常：
            GameNotFound: Game 不存在
        """
        game = lock_game(game_id, db)

        db.query(EliminationClaim).filter(
            EliminationClaim.game_id == game_id
        ).delete(synchronize_session=False)

        for participant in GameManager.get_participants(db, game_id):
            participant.is_alive = True
            participant.has_joined = False
            participant.target_id = None
            participant.last_activity = None

        game.winner_id = None
        GameStateMachine.transition(game, GamePhase.SETUP, db)
        bump_state_version(db, game, "GAME_RESET")

        logger.info(f"Game {game_id} reset to setup")
        return game

    @staticmethod
    def get_game(db: Session, game_id: str) -> Game:
        """
        透過 ID 取得 Game

        異常：
            GameNotFound: Game 不存在
        """
        game = db.query(Game).filter(Game.id == game_id).first()
        if not game:
            raise GameNotFound(game_id)
        return game

    @staticmethod
    def get_current_game(db: Session) -> Game:
        """取得最新建立的 Game"""
        game = db.query(Game).order_by(Game.created_at.desc()).first()
        if not game:
            raise GameNotFound("current")
        return game

    @staticmethod
    def get_participants(db: Session, game_id: str) -> list[Participant]:
        """取得遊戲內所有未被移除的玩家（依加入順序）"""
        return (
            db.query(Participant)
            .filter(Participant.game_id == game_id, Participant.removed_at.is_(None))
            .order_by(Participant.created_at, Participant.id)
            .all()
        )

    @staticmethod
    def check_chain(db: Session, game: Game) -> None:
        """
        寫入後檢查目標鏈（settings.verify_chain_on_write 開啟時）

        異常：
            ChainIntegrityError: 目標鏈不合法（外層 transaction 會 rollback）
        """
        if not get_settings().verify_chain_on_write:
            return
        db.flush()
        participants = GameManager.get_participants(db, game.id)
        verify_chain(
            {p.id: p.target_id for p in participants},
            [p.id for p in participants if p.is_alive]
        )
