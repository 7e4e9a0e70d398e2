"""
Elimination Manager：淘汰申報與確認（Elimination Protocol + Chain Relinker）

流程（以目標的角度）：
    無 claim --submit_claim--> 等待確認 --resolve_claim(True)--> 已淘汰
                                        --resolve_claim(False)--> 無 claim

重點：
1. 只能申報「自己目前的目標」，避免任意指控第三人
2. 同一個目標同時只能有一筆等待中的 claim，第二筆直接 Conflict，不排隊
3. 確認淘汰時，「關閉 claim + 重新串接目標鏈 + 勝利判定」在同一把遊戲鎖、
   同一個 transaction 內完成，外部看不到中間狀態
"""
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Union
import logging

from sqlalchemy.orm import Session

from models import Game, GamePhase, Participant, EliminationClaim, ClaimStatus, utcnow
from core.game_manager import GameManager
from core.participant_manager import ParticipantManager
from core.state_machine import GameStateMachine, require_phase
from core.locks import lock_game, serialized_per_game
from core.exceptions import IllegalState, ClaimAlreadyPending
from services.state_service import bump_state_version
from database import transactional, get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NoClaim:
    """目標目前沒有待確認的 claim"""
    pending: bool = False


@dataclass(frozen=True)
class PendingClaim:
    """目標目前有一筆待確認的 claim"""
    claim_id: str
    claimant_id: str
    method: Optional[str]
    description: Optional[str]
    submitted_at: datetime
    pending: bool = True

    @classmethod
    def from_row(cls, claim: EliminationClaim) -> "PendingClaim":
        return cls(
            claim_id=claim.id,
            claimant_id=claim.claimant_id,
            method=claim.method,
            description=claim.description,
            submitted_at=claim.submitted_at,
        )


ClaimState = Union[NoClaim, PendingClaim]


def _clean_text(value: Optional[str], field: str) -> Optional[str]:
    if value is None:
        return None
    cleaned = value.strip()
    limit = get_settings().max_claim_text_length
    if len(cleaned) > limit:
        raise IllegalState(f"Claim {field} is longer than {limit} characters")
    return cleaned or None


def _find_pending(db: Session, game_id: str, target_id: str) -> Optional[EliminationClaim]:
    return db.query(EliminationClaim).filter(
        EliminationClaim.game_id == game_id,
        EliminationClaim.target_id == target_id,
        EliminationClaim.status == ClaimStatus.PENDING
    ).first()


class EliminationManager:
    """淘汰流程管理器"""

    @staticmethod
    @serialized_per_game
    @transactional
    def submit_claim(
        db: Session,
        game_id: str,
        claimant_id: str,
        target_id: str,
        method: Optional[str] = None,
        description: Optional[str] = None
    ) -> EliminationClaim:
        """
        申報淘汰了自己的目標

        前置條件：
        1. Game 狀態是 ACTIVE
        2. claimant 與 target 都存在
        3. claimant 存活，且 claimant 目前的目標就是 target
        4. target 沒有等待中的 claim

        異常：
            PhaseError: 不在 ACTIVE 階段
            ParticipantNotFound: claimant 或 target 不存在
            IllegalState: claimant 已淘汰或 target 不是他的目標
            ClaimAlreadyPending: target 已有等待中的 claim（呼叫者需等待結果）
        """
        game = lock_game(game_id, db)
        require_phase(game, "submit_claim", GamePhase.ACTIVE)

        claimant = ParticipantManager.get_participant(db, game_id, claimant_id)
        target = ParticipantManager.get_participant(db, game_id, target_id)

        if not claimant.is_alive:
            raise IllegalState(f"Participant {claimant_id} has been eliminated")
        if claimant.target_id != target.id or claimant.id == target.id:
            raise IllegalState(f"Participant {target_id} is not the current target of {claimant_id}")

        if _find_pending(db, game_id, target_id):
            raise ClaimAlreadyPending(target_id)

        claim = EliminationClaim(
            game_id=game_id,
            claimant_id=claimant_id,
            target_id=target_id,
            method=_clean_text(method, "method"),
            description=_clean_text(description, "description"),
            status=ClaimStatus.PENDING,
            submitted_at=utcnow()
        )
        db.add(claim)
        claimant.last_activity = claim.submitted_at
        db.flush()

        bump_state_version(
            db, game, "CLAIM_SUBMITTED",
            {"claim_id": claim.id, "target_id": target_id}
        )
        logger.info(f"Claim {claim.id}: {claimant_id} reported eliminating {target_id} in game {game_id}")
        return claim

    @staticmethod
    @serialized_per_game
    @transactional
    def resolve_claim(db: Session, game_id: str, target_id: str, confirmed: bool) -> EliminationClaim:
        """
        目標確認或否認 claim

        - confirmed=False：claim 標記為 DENIED，其他狀態不變（claimant 之後可以再申報）
        - confirmed=True：claim 標記為 CONFIRMED，並在同一個 transaction 內重新串接目標鏈

        異常：
            PhaseError: 不在 ACTIVE 階段
            ParticipantNotFound: target 不存在
            IllegalState: target 沒有等待中的 claim
        """
        game = lock_game(game_id, db)
        require_phase(game, "resolve_claim", GamePhase.ACTIVE)

        target = ParticipantManager.get_participant(db, game_id, target_id)
        claim = _find_pending(db, game_id, target_id)
        if not claim:
            raise IllegalState(f"Participant {target_id} has no pending claim to resolve")

        now = utcnow()
        claim.resolved_at = now
        target.last_activity = now

        if not confirmed:
            claim.status = ClaimStatus.DENIED
            bump_state_version(
                db, game, "CLAIM_DENIED",
                {"claim_id": claim.id, "target_id": target_id}
            )
            logger.info(f"Claim {claim.id} denied by {target_id}")
            return claim

        killer = ParticipantManager.get_participant(db, game_id, claim.claimant_id)
        if not killer.is_alive or killer.target_id != target.id:
            raise IllegalState(f"Claim {claim.id} no longer matches the target chain")

        claim.status = ClaimStatus.CONFIRMED
        db.flush()
        bump_state_version(
            db, game, "CLAIM_CONFIRMED",
            {"claim_id": claim.id, "target_id": target_id}
        )

        EliminationManager._relink(db, game, killer, target)
        GameManager.check_chain(db, game)
        return claim

    @staticmethod
    def _relink(db: Session, game: Game, killer: Participant, target: Participant) -> None:
        """
        淘汰 target 並讓 killer 接手 target 原本的目標

        流程：
        1. 讀取 target 原本的目標
        2. target 標記為淘汰、清除目標
        3. killer 的目標改為 target 原本的目標（只剩兩人時就是 killer 自己）
        4. target 自己送出、尚未被確認的 claim 一併取消
        5. 只剩一人存活 -> FINISHED

        呼叫者必須持有遊戲鎖，且在 transaction 內
        """
        # 1.
        inherited_target_id = target.target_id

        # 2.
        target.is_alive = False
        target.target_id = None

        # 3.
        killer.target_id = inherited_target_id
        killer.last_activity = utcnow()

        # 4.
        orphaned = db.query(EliminationClaim).filter(
            EliminationClaim.game_id == game.id,
            EliminationClaim.claimant_id == target.id,
            EliminationClaim.status == ClaimStatus.PENDING
        ).all()
        for claim in orphaned:
            claim.status = ClaimStatus.CANCELLED
            claim.resolved_at = killer.last_activity
            logger.info(f"Claim {claim.id} cancelled: claimant {target.id} was eliminated")
        db.flush()

        bump_state_version(
            db, game, "PARTICIPANT_ELIMINATED",
            {"participant_id": target.id, "cancelled_claims": [c.id for c in orphaned]}
        )
        bump_state_version(db, game, "TARGET_REASSIGNED", {"participant_id": killer.id})

        # 5.
        alive = db.query(Participant).filter(
            Participant.game_id == game.id,
            Participant.removed_at.is_(None),
            Participant.is_alive.is_(True)
        ).count()

        logger.info(f"Game {game.id}: {target.id} eliminated by {killer.id}, {alive} alive")

        if alive == 1 or inherited_target_id == killer.id:
            game.winner_id = killer.id
            GameStateMachine.transition(game, GamePhase.FINISHED, db)
            bump_state_version(db, game, "GAME_FINISHED", {"winner_id": killer.id})
            logger.info(f"Game {game.id} finished, winner {killer.id}")

    # ============ 唯讀查詢 ============

    @staticmethod
    def get_claim_state(db: Session, game_id: str, target_id: str) -> ClaimState:
        """目標目前的 claim 狀態：NoClaim 或 PendingClaim"""
        ParticipantManager.get_participant(db, game_id, target_id)
        claim = _find_pending(db, game_id, target_id)
        if claim is None:
            return NoClaim()
        return PendingClaim.from_row(claim)

    @staticmethod
    def list_claims(db: Session, game_id: str, status: Optional[ClaimStatus] = None) -> List[EliminationClaim]:
        """claim 歷史紀錄（可依狀態過濾）"""
        GameManager.get_game(db, game_id)
        query = db.query(EliminationClaim).filter(EliminationClaim.game_id == game_id)
        if status is not None:
            query = query.filter(EliminationClaim.status == status)
        return query.order_by(EliminationClaim.submitted_at).all()
