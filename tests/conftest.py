"""
Shared pytest fixtures.

Every test gets its own SQLite database file (a file rather than :memory:
so that threaded tests can open independent connections to the same data).
"""
import os
import sys
from typing import Callable, Dict, Tuple

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Ensure the project root is importable when running pytest from anywhere
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from database import Base  # noqa: E402
import models  # noqa: E402,F401
from core.game_manager import GameManager  # noqa: E402
from core.participant_manager import ParticipantManager  # noqa: E402
from tests.helpers import IdentityRng  # noqa: E402


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def game(db):
    return GameManager.create_game(db)


@pytest.fixture
def started_game(db, game) -> Callable[..., Tuple[str, Dict[str, str]]]:
    """
    Factory: add + join the named participants and start the game.

    Returns (game_id, {name: participant_id}).
    """
    def _start(names, rng=None) -> Tuple[str, Dict[str, str]]:
        ids = {}
        for name in names:
            participant = ParticipantManager.add_participant(db, game.id, name)
            ids[name] = participant.id
            ParticipantManager.mark_joined(db, game.id, participant.code)
        GameManager.start_game(db, game.id, rng=rng or IdentityRng())
        return game.id, ids

    return _start
