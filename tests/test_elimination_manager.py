"""
Tests for the elimination protocol and chain relinking.

Chains are built with injected randomness; scenarios name the players by
their position in the resulting chain (A -> B -> C -> D -> A).
"""
import random

import pytest

from models import GamePhase, ClaimStatus
from core.exceptions import (
    Conflict,
    ClaimAlreadyPending,
    IllegalState,
    ParticipantNotFound,
    PhaseError,
)
from core.game_manager import GameManager
from core.participant_manager import ParticipantManager
from core.elimination_manager import EliminationManager, NoClaim, PendingClaim
from services.chain_service import verify_chain
from tests.helpers import chain_order, targets_of, alive_ids


def _participant(db, game_id, participant_id):
    db.expire_all()
    return ParticipantManager.get_participant(db, game_id, participant_id)


def _phase(db, game_id):
    db.expire_all()
    return GameManager.get_game(db, game_id).phase


@pytest.fixture
def abcd(db, started_game):
    game_id, _ = started_game(["p1", "p2", "p3", "p4"])
    a, b, c, d = chain_order(db, game_id)
    return game_id, a, b, c, d


def test_concrete_four_player_scenario(db, abcd):
    game_id, a, b, c, d = abcd

    # B eliminates C
    EliminationManager.submit_claim(db, game_id, b, c, method="spoon", description="in the kitchen")
    EliminationManager.resolve_claim(db, game_id, c, True)

    assert not _participant(db, game_id, c).is_alive
    assert _participant(db, game_id, b).target_id == d
    assert chain_order(db, game_id) == [a, b, d]
    assert _phase(db, game_id) == GamePhase.ACTIVE

    # D eliminates B
    EliminationManager.submit_claim(db, game_id, d, b)
    EliminationManager.resolve_claim(db, game_id, b, True)

    assert not _participant(db, game_id, b).is_alive
    assert _participant(db, game_id, d).target_id == a
    assert _participant(db, game_id, a).target_id == d
    assert ParticipantManager.alive_count(db, game_id) == 2
    assert _phase(db, game_id) == GamePhase.ACTIVE

    # D eliminates A: D is the sole survivor
    EliminationManager.submit_claim(db, game_id, d, a)
    EliminationManager.resolve_claim(db, game_id, a, True)

    survivor = _participant(db, game_id, d)
    assert not _participant(db, game_id, a).is_alive
    assert survivor.target_id in (d, None)
    assert _phase(db, game_id) == GamePhase.FINISHED
    assert GameManager.get_game(db, game_id).winner_id == d


def test_no_orphan_after_elimination(db, abcd):
    game_id, a, b, c, d = abcd

    EliminationManager.submit_claim(db, game_id, a, b)
    EliminationManager.resolve_claim(db, game_id, b, True)

    targets = targets_of(db, game_id)
    assert targets[b] is None
    assert b not in targets.values()
    verify_chain(targets, alive_ids(db, game_id))


@pytest.mark.parametrize("seed", [0, 1, 2])
def test_win_exactness(db, started_game, seed):
    game_id, ids = started_game([f"p{i}" for i in range(6)], rng=random.Random(seed))
    rng = random.Random(seed)

    while True:
        alive = alive_ids(db, game_id)
        if len(alive) == 1:
            break
        assert _phase(db, game_id) == GamePhase.ACTIVE

        killer = rng.choice(alive)
        target = _participant(db, game_id, killer).target_id
        EliminationManager.submit_claim(db, game_id, killer, target)
        EliminationManager.resolve_claim(db, game_id, target, True)

        targets = targets_of(db, game_id)
        verify_chain(targets, alive_ids(db, game_id))
        assert targets[target] is None

    assert _phase(db, game_id) == GamePhase.FINISHED
    assert GameManager.get_game(db, game_id).winner_id == alive[0]
    assert len(ids) == 6


def test_claim_only_against_own_target(db, abcd):
    game_id, a, b, c, d = abcd
    before = targets_of(db, game_id)
    version = GameManager.get_game(db, game_id).state_version

    with pytest.raises(IllegalState):
        EliminationManager.submit_claim(db, game_id, a, c)
    with pytest.raises(IllegalState):
        EliminationManager.submit_claim(db, game_id, a, a)

    assert targets_of(db, game_id) == before
    assert ParticipantManager.pending_claims(db, game_id) == []
    assert GameManager.get_game(db, game_id).state_version == version


def test_second_claim_on_same_target_conflicts(db, abcd):
    game_id, a, b, c, d = abcd

    EliminationManager.submit_claim(db, game_id, a, b)
    with pytest.raises(ClaimAlreadyPending):
        EliminationManager.submit_claim(db, game_id, a, b, method="again")
    with pytest.raises(Conflict):
        EliminationManager.submit_claim(db, game_id, a, b)

    pending = ParticipantManager.pending_claims(db, game_id)
    assert len(pending) == 1
    assert pending[0].claimant_id == a


def test_deny_then_deny_again(db, abcd):
    game_id, a, b, c, d = abcd
    before = targets_of(db, game_id)

    EliminationManager.submit_claim(db, game_id, a, b)
    claim = EliminationManager.resolve_claim(db, game_id, b, False)
    assert claim.status == ClaimStatus.DENIED

    with pytest.raises(IllegalState):
        EliminationManager.resolve_claim(db, game_id, b, False)

    assert targets_of(db, game_id) == before
    assert _participant(db, game_id, b).is_alive

    # claimant may try again after a denial
    EliminationManager.submit_claim(db, game_id, a, b)
    assert len(ParticipantManager.pending_claims(db, game_id)) == 1


def test_resolve_without_claim_or_unknown_target(db, abcd):
    game_id, a, b, c, d = abcd

    with pytest.raises(IllegalState):
        EliminationManager.resolve_claim(db, game_id, b, True)
    with pytest.raises(ParticipantNotFound):
        EliminationManager.resolve_claim(db, game_id, "ghost", True)
    with pytest.raises(ParticipantNotFound):
        EliminationManager.submit_claim(db, game_id, "ghost", b)


def test_eliminated_participant_cannot_claim(db, abcd):
    game_id, a, b, c, d = abcd

    EliminationManager.submit_claim(db, game_id, a, b)
    EliminationManager.resolve_claim(db, game_id, b, True)

    with pytest.raises(IllegalState):
        EliminationManager.submit_claim(db, game_id, b, c)


def test_pending_claim_of_eliminated_claimant_is_cancelled(db, abcd):
    game_id, a, b, c, d = abcd

    stale = EliminationManager.submit_claim(db, game_id, b, c)
    EliminationManager.submit_claim(db, game_id, a, b)
    EliminationManager.resolve_claim(db, game_id, b, True)

    db.expire_all()
    statuses = {claim.id: claim.status for claim in EliminationManager.list_claims(db, game_id)}
    assert statuses[stale.id] == ClaimStatus.CANCELLED
    assert isinstance(EliminationManager.get_claim_state(db, game_id, c), NoClaim)

    # A inherited C and can claim right away
    assert _participant(db, game_id, a).target_id == c
    EliminationManager.submit_claim(db, game_id, a, c)
    EliminationManager.resolve_claim(db, game_id, c, True)
    assert chain_order(db, game_id) == [a, d]


def test_claim_state_variant(db, abcd):
    game_id, a, b, c, d = abcd

    assert EliminationManager.get_claim_state(db, game_id, b) == NoClaim()

    EliminationManager.submit_claim(db, game_id, a, b, method="  sock  ", description="")
    state = EliminationManager.get_claim_state(db, game_id, b)

    assert isinstance(state, PendingClaim)
    assert state.claimant_id == a
    assert state.method == "sock"
    assert state.description is None
    assert state.submitted_at is not None


def test_claim_text_length_is_limited(db, abcd):
    game_id, a, b, c, d = abcd
    with pytest.raises(IllegalState):
        EliminationManager.submit_claim(db, game_id, a, b, description="x" * 10_000)
    assert ParticipantManager.pending_claims(db, game_id) == []


def test_claims_rejected_outside_active_phase(db, game):
    first = ParticipantManager.add_participant(db, game.id, "A")
    second = ParticipantManager.add_participant(db, game.id, "B")

    with pytest.raises(PhaseError):
        EliminationManager.submit_claim(db, game.id, first.id, second.id)
    with pytest.raises(PhaseError):
        EliminationManager.resolve_claim(db, game.id, second.id, True)


def test_claims_rejected_after_finish(db, started_game):
    game_id, ids = started_game(["A", "B"])
    a, b = chain_order(db, game_id)

    EliminationManager.submit_claim(db, game_id, a, b)
    EliminationManager.resolve_claim(db, game_id, b, True)
    assert _phase(db, game_id) == GamePhase.FINISHED

    with pytest.raises(PhaseError):
        EliminationManager.submit_claim(db, game_id, a, a)
    with pytest.raises(PhaseError):
        GameManager.start_game(db, game_id)
