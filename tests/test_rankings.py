"""Rank aggregation, snapshots and the ranking job lock."""

from datetime import datetime

import pytest
import pytest_asyncio

from skillrank.constants import LockConstants
from skillrank.database.models import RankingCategory, RankingPeriod, SkillTier
from skillrank.services.ranking_service import RankingService
from skillrank.utils.exceptions import ValidationError
from skillrank.utils.ranking import assign_ranks, normalize_scope, period_key_for


class FakeRedis:
    """Just enough of redis.asyncio.Redis for SET NX EX locking."""

    def __init__(self):
        self.store = {}

    async def set(self, key, value, ex=None, nx=False):
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    async def delete(self, key):
        self.store.pop(key, None)


@pytest.fixture
def ranking_service(db):
    return RankingService(db.session_factory)


@pytest_asyncio.fixture
async def ranked_player(tennis, tennis_techniques, score_ops, make_player):
    """Factory: a player whose tennis effective score equals `score`."""
    async def _make(user_id, score, country="PE"):
        profile = await make_player(user_id, country=country)
        outcome = None
        for technique in tennis_techniques[:3]:
            outcome = await score_ops.record_technique_result(profile.id, tennis.id, technique.id, score)
        return profile, outcome
    return _make


def test_assign_ranks_is_contiguous_and_stable():
    entries = [("c", 70.0, 3), ("a", 90.0, 7), ("b", 70.0, 2), ("d", 10.0, 1)]
    ranked = assign_ranks(entries)

    assert ranked == [(1, "a"), (2, "b"), (3, "c"), (4, "d")]
    assert assign_ranks(reversed(entries)) == ranked
    assert assign_ranks([]) == []


def test_period_keys():
    when = datetime(2026, 10, 19, 8, 30)
    assert period_key_for(RankingPeriod.MONTHLY, when) == "2026-10"
    assert period_key_for(RankingPeriod.WEEKLY, when) == "2026-W43"
    assert period_key_for(RankingPeriod.ALL_TIME, when) == "all"
    assert period_key_for(RankingPeriod.WEEKLY, datetime(2027, 1, 1)) == "2026-W53"


def test_normalize_scope():
    assert normalize_scope(RankingCategory.GLOBAL, "PE") == ""
    assert normalize_scope(RankingCategory.COUNTRY, " pe ") == "PE"
    assert normalize_scope(RankingCategory.TIER, "tercera_a") == "TERCERA_A"
    with pytest.raises(ValidationError):
        normalize_scope(RankingCategory.COUNTRY, None)
    with pytest.raises(ValidationError):
        normalize_scope(RankingCategory.TIER, "UNRANKED")


@pytest.mark.asyncio
async def test_global_ranking_orders_by_score(db, tennis, tennis_techniques, ranking_service,
                                              ranked_player, score_ops, make_player):
    await ranked_player("ana", 70)
    await ranked_player("bruno", 50)
    await ranked_player("carla", 90)
    newcomer = await make_player("diego")
    await score_ops.record_technique_result(newcomer.id, tennis.id, tennis_techniques[0].id, 99)

    result = await ranking_service.recompute_rankings(tennis.id, "global", period="all_time")
    assert result.ranked_players == 3
    assert result.period_key == "all"

    page = await ranking_service.get_rankings(tennis.id, RankingCategory.GLOBAL)
    assert [entry.display_name for entry in page.entries] == ["Carla", "Ana", "Bruno"]
    assert [entry.rank for entry in page.entries] == [1, 2, 3]
    assert page.total_players == 3
    assert all(entry.previous_rank is None for entry in page.entries)


@pytest.mark.asyncio
async def test_ties_break_by_sport_profile_id(tennis, ranking_service, ranked_player):
    _, first = await ranked_player("ana", 60)
    _, second = await ranked_player("bruno", 60)

    await ranking_service.recompute_rankings(tennis.id, RankingCategory.GLOBAL)
    page = await ranking_service.get_rankings(tennis.id)

    assert [entry.sport_profile_id for entry in page.entries] == sorted(
        [first.sport_profile_id, second.sport_profile_id]
    )


@pytest.mark.asyncio
async def test_rerun_is_idempotent_and_leaves_profiles_alone(db, tennis, ranking_service, ranked_player):
    _, ana = await ranked_player("ana", 70)
    await ranked_player("bruno", 50)
    before = await db.get_sport_profile_by_id(ana.sport_profile_id)

    first = await ranking_service.recompute_rankings(tennis.id, "GLOBAL", period="MONTHLY", period_key="2026-10")
    page_one = await ranking_service.get_rankings(tennis.id, period="MONTHLY", period_key="2026-10")
    second = await ranking_service.recompute_rankings(tennis.id, "GLOBAL", period="MONTHLY", period_key="2026-10")
    page_two = await ranking_service.get_rankings(tennis.id, period="MONTHLY", period_key="2026-10")

    assert first.ranked_players == second.ranked_players == 2
    assert [(e.profile_id, e.rank, e.previous_rank) for e in page_one.entries] == \
           [(e.profile_id, e.rank, e.previous_rank) for e in page_two.entries]

    after = await db.get_sport_profile_by_id(ana.sport_profile_id)
    assert (after.effective_score, after.skill_tier, after.match_elo) == \
           (before.effective_score, before.skill_tier, before.match_elo)


@pytest.mark.asyncio
async def test_previous_rank_carries_from_earlier_period(tennis, tennis_techniques, ranking_service,
                                                         ranked_player, score_ops):
    ana, _ = await ranked_player("ana", 50)
    await ranked_player("bruno", 70)
    await ranking_service.recompute_rankings(tennis.id, "GLOBAL", period="MONTHLY", period_key="2026-09")

    for technique in tennis_techniques[:3]:
        await score_ops.record_technique_result(ana.id, tennis.id, technique.id, 95)
    await ranking_service.recompute_rankings(tennis.id, "GLOBAL", period="MONTHLY", period_key="2026-10")

    page = await ranking_service.get_rankings(tennis.id, period="MONTHLY")
    assert page.period_key == "2026-10"
    ana_entry = page.entries[0]
    assert ana_entry.profile_id == ana.id
    assert (ana_entry.rank, ana_entry.previous_rank, ana_entry.movement) == (1, 2, 1)
    assert page.entries[1].movement == -1


@pytest.mark.asyncio
async def test_all_time_movement_against_previous_run(tennis, tennis_techniques, ranking_service,
                                                      ranked_player, score_ops):
    ana, _ = await ranked_player("ana", 50)
    await ranked_player("bruno", 70)
    await ranking_service.recompute_rankings(tennis.id, "GLOBAL")

    for technique in tennis_techniques[:3]:
        await score_ops.record_technique_result(ana.id, tennis.id, technique.id, 95)
    await ranking_service.recompute_rankings(tennis.id, "GLOBAL")
    await ranking_service.recompute_rankings(tennis.id, "GLOBAL")

    page = await ranking_service.get_rankings(tennis.id)
    assert (page.entries[0].profile_id, page.entries[0].previous_rank) == (ana.id, 2)


@pytest.mark.asyncio
async def test_country_and_tier_scopes(tennis, tennis_techniques, ranking_service, ranked_player, score_ops):
    ana, _ = await ranked_player("ana", 55, country="PE")
    await ranked_player("bruno", 58, country="PE")
    await ranked_player("carla", 52, country="CL")

    await ranking_service.recompute_rankings(tennis.id, "COUNTRY", "pe")
    peru = await ranking_service.get_rankings(tennis.id, "COUNTRY", "PE")
    assert [entry.country for entry in peru.entries] == ["PE", "PE"]

    result = await ranking_service.recompute_rankings(tennis.id, "TIER", "TERCERA_A")
    assert result.ranked_players == 3

    # Ana leaves the tier; a re-run drops her row
    for technique in tennis_techniques[:3]:
        await score_ops.record_technique_result(ana.id, tennis.id, technique.id, 75)
    rerun = await ranking_service.recompute_rankings(tennis.id, "TIER", "TERCERA_A")
    assert rerun.ranked_players == 2
    assert rerun.removed_snapshots == 1

    tier_page = await ranking_service.get_rankings(tennis.id, "TIER", "TERCERA_A")
    assert ana.id not in [entry.profile_id for entry in tier_page.entries]
    assert [entry.rank for entry in tier_page.entries] == [1, 2]


@pytest.mark.asyncio
async def test_locked_run_is_skipped(db, tennis, ranked_player):
    await ranked_player("ana", 70)
    redis_client = FakeRedis()
    service = RankingService(db.session_factory, redis_client)

    lock_key = f"{LockConstants.RANKINGS_LOCK_PREFIX}:{tennis.id}:GLOBAL::ALL_TIME"
    redis_client.store[lock_key] = "1"
    skipped = await service.recompute_rankings(tennis.id, "GLOBAL")
    assert skipped.skipped is True
    assert (await service.get_rankings(tennis.id)).total_players == 0

    del redis_client.store[lock_key]
    done = await service.recompute_rankings(tennis.id, "GLOBAL")
    assert done.skipped is False
    assert done.ranked_players == 1
    assert lock_key not in redis_client.store


@pytest.mark.asyncio
async def test_recompute_all_rankings(tennis, ranking_service, ranked_player):
    await ranked_player("ana", 55, country="PE")
    await ranked_player("carla", 85, country="CL")

    results = await ranking_service.recompute_all_rankings(RankingPeriod.ALL_TIME)
    tennis_scopes = {(r.category, r.scope_value) for r in results if r.sport_id == tennis.id}

    assert tennis_scopes == {
        (RankingCategory.GLOBAL, ""),
        (RankingCategory.COUNTRY, "CL"),
        (RankingCategory.COUNTRY, "PE"),
        (RankingCategory.TIER, "TERCERA_A"),
        (RankingCategory.TIER, "PRIMERA_B"),
    }


@pytest.mark.asyncio
async def test_recompute_all_rankings_clears_emptied_tier(tennis, tennis_techniques, ranking_service,
                                                          ranked_player, score_ops):
    ana, _ = await ranked_player("ana", 55)
    await ranking_service.recompute_all_rankings(RankingPeriod.ALL_TIME)
    before = await ranking_service.get_rankings(tennis.id, "TIER", "TERCERA_A")
    assert [entry.profile_id for entry in before.entries] == [ana.id]

    # Ana moves up; TERCERA_A has nobody left
    for technique in tennis_techniques[:3]:
        await score_ops.record_technique_result(ana.id, tennis.id, technique.id, 65)
    results = await ranking_service.recompute_all_rankings(RankingPeriod.ALL_TIME)

    emptied = [r for r in results if (r.category, r.scope_value) == (RankingCategory.TIER, "TERCERA_A")]
    assert len(emptied) == 1
    assert emptied[0].ranked_players == 0
    assert emptied[0].removed_snapshots == 1

    assert (await ranking_service.get_rankings(tennis.id, "TIER", "TERCERA_A")).entries == []
    moved = await ranking_service.get_rankings(tennis.id, "TIER", "SEGUNDA_B")
    assert [(entry.profile_id, entry.skill_tier) for entry in moved.entries] == [(ana.id, SkillTier.SEGUNDA_B)]


@pytest.mark.asyncio
async def test_recompute_all_rankings_with_explicit_period_key(tennis, ranking_service, ranked_player):
    await ranked_player("ana", 55)

    results = await ranking_service.recompute_all_rankings(RankingPeriod.MONTHLY, period_key="2026-01")

    assert {r.period_key for r in results} == {"2026-01"}
    page = await ranking_service.get_rankings(tennis.id, period="MONTHLY", period_key="2026-01")
    assert page.total_players == 1


@pytest.mark.asyncio
async def test_my_position(tennis, ranking_service, ranked_player, make_player):
    ana, _ = await ranked_player("ana", 55, country="PE")
    await ranked_player("bruno", 58, country="PE")
    await ranked_player("carla", 52, country="CL")
    await ranking_service.recompute_all_rankings(RankingPeriod.ALL_TIME)

    position = await ranking_service.get_my_position(ana.id, tennis.id)
    assert position.skill_tier == SkillTier.TERCERA_A
    assert position.global_rank == 2
    assert position.country_rank == 2
    assert position.total_in_country == 2
    assert position.total_in_tier == 3
    assert position.score_spread == 0.0

    stranger = await make_player("diego")
    empty = await ranking_service.get_my_position(stranger.id, tennis.id)
    assert empty.skill_tier == SkillTier.UNRANKED
    assert empty.global_rank is None
    assert empty.total_in_country == 0
