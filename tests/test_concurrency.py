"""
Concurrency tests for the per-game critical section.

Each worker thread opens its own session, like concurrent HTTP requests do.
"""
import gc
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from models import GamePhase, ClaimStatus
from core import locks
from core.exceptions import ClaimAlreadyPending, IllegalState
from core.game_manager import GameManager
from core.participant_manager import ParticipantManager
from core.elimination_manager import EliminationManager
from core.locks import game_mutex
from services.chain_service import verify_chain
from services.snapshot_service import build_game_snapshot
from services.state_service import list_events
from tests.helpers import chain_order, targets_of, alive_ids


def _in_session(session_factory, func, *args, **kwargs):
    session = session_factory()
    try:
        return func(session, *args, **kwargs)
    finally:
        session.close()


def test_game_mutex_is_shared_per_game():
    assert game_mutex("g1") is game_mutex("g1")
    assert game_mutex("g1") is not game_mutex("g2")


def test_duplicate_claims_race_exactly_one_wins(db, session_factory, started_game):
    game_id, _ = started_game(["A", "B", "C"])
    claimant, target = chain_order(db, game_id)[:2]
    barrier = threading.Barrier(8)

    def attempt(_):
        barrier.wait()
        try:
            _in_session(session_factory, EliminationManager.submit_claim, game_id, claimant, target)
            return "ok"
        except ClaimAlreadyPending:
            return "conflict"

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(attempt, range(8)))

    assert results.count("ok") == 1
    assert results.count("conflict") == 7
    assert len(ParticipantManager.pending_claims(db, game_id)) == 1


def test_concurrent_confirms_keep_single_cycle(db, session_factory, started_game):
    game_id, _ = started_game([f"p{i}" for i in range(6)])
    order = chain_order(db, game_id)

    # every second player claims their target: disjoint pairs
    killers = order[0::2]
    victims = order[1::2]
    for killer, victim in zip(killers, victims):
        EliminationManager.submit_claim(db, game_id, killer, victim)

    barrier = threading.Barrier(len(victims))

    def confirm(victim):
        barrier.wait()
        return _in_session(session_factory, EliminationManager.resolve_claim, game_id, victim, True)

    with ThreadPoolExecutor(max_workers=len(victims)) as pool:
        list(pool.map(confirm, victims))

    targets = targets_of(db, game_id)
    verify_chain(targets, alive_ids(db, game_id))
    assert sorted(alive_ids(db, game_id)) == sorted(killers)
    assert chain_order(db, game_id) == killers
    assert all(targets[victim] is None for victim in victims)


def test_snapshots_during_writes_are_consistent(db, session_factory, started_game):
    game_id, _ = started_game([f"p{i}" for i in range(6)])
    stop = threading.Event()
    seen = []

    def poll():
        while not stop.is_set():
            snapshot = _in_session(session_factory, build_game_snapshot, game_id)
            seen.append(snapshot)

    poller = threading.Thread(target=poll)
    poller.start()
    try:
        while len(alive_ids(db, game_id)) > 1:
            killer = chain_order(db, game_id)[0]
            victim = ParticipantManager.get_participant(db, game_id, killer).target_id
            EliminationManager.submit_claim(db, game_id, killer, victim)
            EliminationManager.resolve_claim(db, game_id, victim, True)
    finally:
        stop.set()
        poller.join()

    versions = [snapshot["state_version"] for snapshot in seen]
    assert versions == sorted(versions)

    for snapshot in seen:
        alive = sum(1 for p in snapshot["participants"] if p["is_alive"])
        # a confirmed claim and its victim's death commit together
        assert not any(
            p["has_pending_claim"] and not p["is_alive"] for p in snapshot["participants"]
        )
        assert (snapshot["winner_id"] is not None) == (alive == 1)
        # finished exactly when one participant is left
        assert (snapshot["phase"] == GamePhase.FINISHED) == (alive == 1)

    db.expire_all()
    assert GameManager.get_game(db, game_id).phase == GamePhase.FINISHED


def test_unused_game_mutexes_are_released():
    before = len(locks._game_mutexes)
    for i in range(1000):
        game_mutex(f"missing-{i}")
    gc.collect()
    assert len(locks._game_mutexes) <= before

    held = game_mutex("in-use")
    gc.collect()
    assert game_mutex("in-use") is held


def test_writes_reload_rows_another_session_already_loaded(db, session_factory, started_game):
    game_id, _ = started_game(["A", "B", "C", "D"])
    a, b, c, d = chain_order(db, game_id)

    # two idle sessions that already hold the roster and the game row
    readers = [session_factory(), session_factory()]
    try:
        for reader in readers:
            ParticipantManager.list_participants(reader, game_id)
            GameManager.get_game(reader, game_id)

        EliminationManager.submit_claim(db, game_id, a, b)
        EliminationManager.resolve_claim(db, game_id, b, True)
        committed = GameManager.get_game(db, game_id).state_version

        # A now targets C, B is dead
        claim = EliminationManager.submit_claim(readers[0], game_id, a, c)
        assert claim.status == ClaimStatus.PENDING
        assert GameManager.get_game(readers[0], game_id).state_version == committed + 1

        with pytest.raises(IllegalState):
            EliminationManager.submit_claim(readers[1], game_id, a, b)
    finally:
        for reader in readers:
            reader.close()

    db.expire_all()
    pending = ParticipantManager.pending_claims(db, game_id)
    assert [(p.claimant_id, p.target_id) for p in pending] == [(a, c)]

    versions = [event.version for event in list_events(db, game_id)]
    assert versions == sorted(set(versions))
