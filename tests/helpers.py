"""Test helpers shared by several test modules."""
import random
from typing import List

from core.game_manager import GameManager
from services.chain_service import follow_chain


class IdentityRng(random.Random):
    """Fisher–Yates never swaps: the chain follows the order ids were given in."""

    def randint(self, a, b):
        return b


def chain_order(db, game_id: str) -> List[str]:
    """Alive participant ids in target order, starting from the first alive one."""
    db.expire_all()
    participants = GameManager.get_participants(db, game_id)
    alive = [p for p in participants if p.is_alive]
    targets = {p.id: p.target_id for p in alive}
    return follow_chain(targets, alive[0].id)


def targets_of(db, game_id: str) -> dict:
    """{participant_id: target_id} for every participant of the game."""
    db.expire_all()
    return {p.id: p.target_id for p in GameManager.get_participants(db, game_id)}


def alive_ids(db, game_id: str) -> List[str]:
    db.expire_all()
    return [p.id for p in GameManager.get_participants(db, game_id) if p.is_alive]
