"""
Shared fixtures for the rating engine tests.

Every test gets its own SQLite file database (not :memory:) so concurrent
sessions use separate connections and really contend for the write lock.
"""

import os

os.environ["LOG_TO_FILE"] = "false"
os.environ["REDIS_URL"] = ""

import pytest
import pytest_asyncio

from skillrank.database.database import Database
from skillrank.database.match_operations import MatchOperations
from skillrank.operations.challenge_operations import ChallengeOperations
from skillrank.operations.player_operations import PlayerOperations
from skillrank.operations.score_operations import ScoreOperations


@pytest_asyncio.fixture
async def db(tmp_path):
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'skillrank_test.db'}")
    await database.initialize()
    yield database
    await database.close()


@pytest_asyncio.fixture
async def tennis(db):
    return await db.get_sport_by_slug("tennis")


@pytest_asyncio.fixture
async def tennis_techniques(db, tennis):
    return await db.get_techniques_for_sport(tennis.id)


@pytest.fixture
def player_ops(db):
    return PlayerOperations(db)


@pytest.fixture
def score_ops(db, player_ops):
    return ScoreOperations(db, player_ops)


@pytest.fixture
def match_ops(db):
    return MatchOperations(db)


@pytest.fixture
def challenge_ops(db, player_ops, match_ops):
    return ChallengeOperations(db, player_ops, match_ops)


@pytest.fixture
def make_player(player_ops):
    """Factory for PlayerProfiles: await make_player("ana", country="PE")."""
    async def _make(user_id, country="PE", display_name=None):
        return await player_ops.get_or_create_profile(
            user_id, display_name=display_name or user_id.title(), country=country
        )
    return _make


@pytest.fixture
def make_sport_player(make_player, player_ops):
    """Factory returning (PlayerProfile, SportProfile) joined to a sport."""
    async def _make(user_id, sport_id, country="PE"):
        profile = await make_player(user_id, country=country)
        sport_profile = await player_ops.join_sport(profile.id, sport_id)
        return profile, sport_profile
    return _make
