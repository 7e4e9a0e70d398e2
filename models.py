"""
資料模型

- Game：一場遊戲（階段 + state_version）
- Participant：玩家，target_id 指向目前的目標，所有存活玩家的 target 形成單一循環
- EliminationClaim：淘汰申報（等待目標確認），同時保留歷史紀錄
- EventLog：所有狀態變更事件，供前端短輪詢
"""
import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, Enum, ForeignKey, Index, JSON, Text, text
)

from database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GamePhase(str, enum.Enum):
    SETUP = "setup"
    ACTIVE = "active"
    FINISHED = "finished"


class ClaimStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DENIED = "denied"
    # claimant 在等待期間自己被淘汰
    CANCELLED = "cancelled"


class Game(Base):
    __tablename__ = "games"

    id = Column(String(36), primary_key=True, default=_uuid)
    phase = Column(Enum(GamePhase), nullable=False, default=GamePhase.SETUP)
    state_version = Column(Integer, nullable=False, default=0)
    winner_id = Column(String(36), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Participant(Base):
    __tablename__ = "participants"

    id = Column(String(36), primary_key=True, default=_uuid)
    game_id = Column(String(36), ForeignKey("games.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    code = Column(String(32), nullable=False)
    is_alive = Column(Boolean, nullable=False, default=True)
    has_joined = Column(Boolean, nullable=False, default=False)
    target_id = Column(String(36), ForeignKey("participants.id"), nullable=True)
    last_activity = Column(DateTime(timezone=True), nullable=True)
    # soft delete：只有 setup 階段可以移除玩家
    removed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("uq_participants_game_code", "game_id", "code", unique=True),
    )

    @property
    def is_removed(self) -> bool:
        return self.removed_at is not None


class EliminationClaim(Base):
    __tablename__ = "elimination_claims"

    id = Column(String(36), primary_key=True, default=_uuid)
    game_id = Column(String(36), ForeignKey("games.id"), nullable=False, index=True)
    claimant_id = Column(String(36), ForeignKey("participants.id"), nullable=False)
    target_id = Column(String(36), ForeignKey("participants.id"), nullable=False)
    method = Column(String(500), nullable=True)
    description = Column(Text, nullable=True)
    status = Column(Enum(ClaimStatus), nullable=False, default=ClaimStatus.PENDING)
    submitted_at = Column(DateTime(timezone=True), default=utcnow)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        # 同一個目標同時最多只有一筆 PENDING claim
        Index(
            "uq_claims_pending_target",
            "target_id",
            unique=True,
            sqlite_where=text("status = 'PENDING'"),
            postgresql_where=text("status = 'PENDING'"),
        ),
    )


class EventLog(Base):
    __tablename__ = "event_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    game_id = Column(String(36), ForeignKey("games.id"), nullable=False, index=True)
    version = Column(Integer, nullable=False)
    event_type = Column(String(50), nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=utcnow)
