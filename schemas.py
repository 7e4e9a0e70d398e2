"""
API Schemas（pydantic）

Request / Response 的資料格式，和 ORM model 分開
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from models import GamePhase, ClaimStatus


# ============ Game ============

class GameResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    phase: GamePhase
    state_version: int
    winner_id: Optional[str] = None
    created_at: Optional[datetime] = None


class ParticipantPublic(BaseModel):
    id: str
    name: str
    is_alive: bool
    has_joined: bool
    has_pending_claim: bool
    last_activity: Optional[datetime] = None


class GameStateResponse(BaseModel):
    """短輪詢用：前端比對 state_version 決定是否需要更新畫面"""
    game_id: str
    phase: GamePhase
    state_version: int
    winner_id: Optional[str] = None
    alive_count: int
    participants: List[ParticipantPublic]


class EventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    version: int
    event_type: str
    data: Dict[str, Any]
    created_at: Optional[datetime] = None


# ============ Participant ============

class ParticipantCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class ParticipantRename(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class ParticipantJoin(BaseModel):
    code: str = Field(..., min_length=1, max_length=32)


class ParticipantResponse(BaseModel):
    """Operator / 本人用：包含代碼與目標"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    game_id: str
    name: str
    code: str
    is_alive: bool
    has_joined: bool
    target_id: Optional[str] = None
    last_activity: Optional[datetime] = None


class TargetResponse(BaseModel):
    """玩家目前的目標（沒有目標時兩個欄位都是 None）"""
    target_id: Optional[str] = None
    target_name: Optional[str] = None


# ============ Claim ============

class ClaimSubmit(BaseModel):
    claimant_id: str
    target_id: str
    method: Optional[str] = None
    description: Optional[str] = None


class ClaimResolve(BaseModel):
    target_id: str
    confirmed: bool


class ClaimResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    claimant_id: str
    target_id: str
    method: Optional[str] = None
    description: Optional[str] = None
    status: ClaimStatus
    submitted_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None


class ClaimStateResponse(BaseModel):
    """目標目前的 claim 狀態（pending=False 時其他欄位皆為 None）"""
    pending: bool
    claim_id: Optional[str] = None
    claimant_id: Optional[str] = None
    method: Optional[str] = None
    description: Optional[str] = None
    submitted_at: Optional[datetime] = None


class ActionResponse(BaseModel):
    status: str
