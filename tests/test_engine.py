"""End-to-end through the engine facade and the command line."""

import pytest

from skillrank.database.models import RankingCategory, SkillTier
from skillrank.engine import SkillRankEngine
from skillrank.main import main


@pytest.mark.asyncio
async def test_engine_round_trip(tmp_path):
    engine = SkillRankEngine(f"sqlite+aiosqlite:///{tmp_path / 'engine.db'}")
    async with engine:
        assert engine.classify_tier(72) == SkillTier.SEGUNDA_A
        assert engine.category_group(SkillTier.SEGUNDA_A) == "2da"

        tennis = await engine.db.get_sport_by_slug("tennis")
        techniques = await engine.db.get_techniques_for_sport(tennis.id)
        ana = await engine.get_or_create_profile("user-ana", "Ana", "pe")
        bruno = await engine.get_or_create_profile("user-bruno", "Bruno", "PE")
        assert ana.country == "PE"
        assert (await engine.get_or_create_profile("user-ana")).id == ana.id

        tier_changes = []
        engine.add_tier_change_listener(tier_changes.append)
        for technique in techniques[:3]:
            await engine.record_technique_result(ana.id, tennis.id, technique.id, 64)
            await engine.record_technique_result(bruno.id, tennis.id, technique.id, 48)
        assert [event.new_tier for event in tier_changes] == [SkillTier.SEGUNDA_B, SkillTier.TERCERA_B]

        match = await engine.log_match(tennis.id, ana.id, bruno.id)
        await engine.confirm_match(match.id, ana.id, "WIN")
        confirmed = await engine.confirm_match(match.id, bruno.id, "LOSS")
        assert confirmed.rating_applied

        run = await engine.recompute_rankings(tennis.id, RankingCategory.COUNTRY, "PE")
        assert run.ranked_players == 2
        page = await engine.get_rankings(tennis.id, "COUNTRY", "PE")
        assert [entry.profile_id for entry in page.entries] == [ana.id, bruno.id]

        path = await engine.get_improvement_path(bruno.id, tennis.id)
        assert path.next_tier == SkillTier.TERCERA_A


def test_cli_init_db_and_recompute(tmp_path, capsys):
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"

    assert main(["--database-url", database_url, "init-db"]) == 0
    assert "Database ready" in capsys.readouterr().out

    assert main(["--database-url", database_url, "recompute-rankings",
                 "--sport", "tennis", "--period", "monthly", "--period-key", "2026-10"]) == 0
    assert "GLOBAL MONTHLY/2026-10: 0 ranked" in capsys.readouterr().out

    assert main(["--database-url", database_url, "recompute-rankings",
                 "--all", "--period", "monthly", "--period-key", "2026-01"]) == 0
    out = capsys.readouterr().out
    assert "GLOBAL MONTHLY/2026-01: 0 ranked" in out

    assert main(["--database-url", database_url, "recompute-rankings", "--sport", "curling"]) == 2
