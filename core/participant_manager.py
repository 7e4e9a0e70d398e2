"""
Participant Manager：玩家名單（Participant Registry）

職責：
1. 新增 / 改名 / 移除玩家（只限 SETUP 階段，目標鏈建立後名單不可再變動）
2. 玩家用代碼登入（不分大小寫）
3. 唯讀查詢：名單、存活人數、待確認的 claim、玩家目前的目標
"""
from typing import List, Optional
import logging

from sqlalchemy.orm import Session

from models import Participant, EliminationClaim, ClaimStatus, GamePhase, utcnow
from core.game_manager import GameManager
from core.state_machine import require_phase
from core.locks import lock_game, serialized_per_game
from core.exceptions import ParticipantNotFound, IllegalState
from services.naming_service import generate_access_code, normalize_code
from services.state_service import bump_state_version
from database import transactional, get_settings

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 100
CODE_ATTEMPTS_PER_LENGTH = 20


def _clean_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise IllegalState("Participant name must not be empty")
    if len(cleaned) > MAX_NAME_LENGTH:
        raise IllegalState(f"Participant name is longer than {MAX_NAME_LENGTH} characters")
    return cleaned


class ParticipantManager:
    """玩家名單管理器"""

    @staticmethod
    @serialized_per_game
    @transactional
    def add_participant(db: Session, game_id: str, name: str) -> Participant:
        """
        新增玩家（只限 SETUP）

        流程：
        1. 生成代碼（檢查同一場遊戲內不重複，含已移除的玩家）
        2. 建立 Participant

        返回：
            新的 Participant（id + code）

        異常：
            GameNotFound / PhaseError / IllegalState（名稱不合法）
        """
        game = lock_game(game_id, db)
        require_phase(game, "add_participant", GamePhase.SETUP)
        name = _clean_name(name)

        taken = {
            code for (code,) in db.query(Participant.code).filter(Participant.game_id == game_id)
        }
        digits = get_settings().access_code_digits
        code = generate_access_code(name, digits)
        attempts = 1
        while code in taken:
            logger.warning(f"Access code collision detected in game {game_id}, regenerating")
            if attempts % CODE_ATTEMPTS_PER_LENGTH == 0:
                digits += 1
            code = generate_access_code(name, digits)
            attempts += 1

        participant = Participant(
            game_id=game_id,
            name=name,
            code=code,
            is_alive=True,
            has_joined=False,
            created_at=utcnow()
        )
        db.add(participant)
        db.flush()

        bump_state_version(db, game, "PARTICIPANT_ADDED", {"participant_id": participant.id})
        logger.info(f"Added participant {participant.id} ({name}) to game {game_id}")
        return participant

    @staticmethod
    @serialized_per_game
    @transactional
    def rename_participant(db: Session, game_id: str, participant_id: str, new_name: str) -> Participant:
        """改名（只限 SETUP）"""
        game = lock_game(game_id, db)
        require_phase(game, "rename_participant", GamePhase.SETUP)

        participant = ParticipantManager.get_participant(db, game_id, participant_id)
        participant.name = _clean_name(new_name)

        bump_state_version(db, game, "PARTICIPANT_RENAMED", {"participant_id": participant_id})
        return participant

    @staticmethod
    @serialized_per_game
    @transactional
    def remove_participant(db: Session, game_id: str, participant_id: str) -> None:
        """
        移除玩家（只限 SETUP，soft delete）

        遊戲開始後不能移除：目標鏈上少一個人會斷鏈，
        要離開只能透過淘汰流程
        """
        game = lock_game(game_id, db)
        require_phase(game, "remove_participant", GamePhase.SETUP)

        participant = ParticipantManager.get_participant(db, game_id, participant_id)
        participant.removed_at = utcnow()
        participant.has_joined = False

        bump_state_version(db, game, "PARTICIPANT_REMOVED", {"participant_id": participant_id})
        logger.info(f"Removed participant {participant_id} from game {game_id}")

    @staticmethod
    @serialized_per_game
    @transactional
    def mark_joined(db: Session, game_id: str, code: str) -> Participant:
        """
        玩家用代碼登入（冪等）

        - 代碼不分大小寫
        - 只有存活的玩家可以登入
        - 任何階段都可以登入（遊戲中重新登入查看目標），
          但遊戲開始後才登入的玩家不會被加入目標鏈

        異常：
            ParticipantNotFound: 代碼不存在或玩家已被淘汰
        """
        game = lock_game(game_id, db)

        normalized = normalize_code(code or "")
        participant = db.query(Participant).filter(
            Participant.game_id == game_id,
            Participant.code == normalized,
            Participant.is_alive.is_(True),
            Participant.removed_at.is_(None)
        ).first()
        if not participant:
            raise ParticipantNotFound(f"with code {normalized}")

        first_login = not participant.has_joined
        participant.has_joined = True
        participant.last_activity = utcnow()

        if first_login:
            bump_state_version(db, game, "PARTICIPANT_JOINED", {"participant_id": participant.id})
            logger.info(f"Participant {participant.id} joined game {game_id}")
        return participant

    # ============ 唯讀查詢 ============

    @staticmethod
    def get_participant(db: Session, game_id: str, participant_id: str) -> Participant:
        """
        取得玩家

        異常：
            ParticipantNotFound: 玩家不存在、屬於其他遊戲或已被移除
        """
        participant = db.query(Participant).filter(
            Participant.id == participant_id,
            Participant.game_id == game_id,
            Participant.removed_at.is_(None)
        ).first()
        if not participant:
            raise ParticipantNotFound(participant_id)
        return participant

    @staticmethod
    def list_participants(db: Session, game_id: str) -> List[Participant]:
        GameManager.get_game(db, game_id)
        return GameManager.get_participants(db, game_id)

    @staticmethod
    def joined_participants(db: Session, game_id: str) -> List[Participant]:
        return [p for p in ParticipantManager.list_participants(db, game_id) if p.has_joined]

    @staticmethod
    def alive_count(db: Session, game_id: str) -> int:
        GameManager.get_game(db, game_id)
        return db.query(Participant).filter(
            Participant.game_id == game_id,
            Participant.removed_at.is_(None),
            Participant.is_alive.is_(True)
        ).count()

    @staticmethod
    def pending_claims(db: Session, game_id: str) -> List[EliminationClaim]:
        """所有等待目標確認的 claim（依提交時間排序）"""
        GameManager.get_game(db, game_id)
        return (
            db.query(EliminationClaim)
            .filter(
                EliminationClaim.game_id == game_id,
                EliminationClaim.status == ClaimStatus.PENDING
            )
            .order_by(EliminationClaim.submitted_at)
            .all()
        )

    @staticmethod
    def get_current_target(db: Session, game_id: str, participant_id: str) -> Optional[Participant]:
        """玩家目前的目標（沒有目標或已淘汰時返回 None）"""
        participant = ParticipantManager.get_participant(db, game_id, participant_id)
        if not participant.target_id or participant.target_id == participant.id:
            return None
        return db.query(Participant).filter(Participant.id == participant.target_id).first()
