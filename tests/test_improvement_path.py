"""Improvement path recommendations and re-evaluation timing."""

from datetime import datetime, timedelta

import pytest

from skillrank.data_models.improvement import ReEvaluationStatus, TechniqueBreakdownItem
from skillrank.database.models import SkillTier
from skillrank.services.improvement_service import ImprovementService
from skillrank.utils.improvement_path import (
    compute_improvement_path, re_evaluation_message, re_evaluation_status
)

NOW = datetime(2026, 10, 19, 12, 0)


def technique(slug, best, days_ago=None):
    analyzed = NOW - timedelta(days=days_ago) if days_ago is not None else None
    return TechniqueBreakdownItem(slug=slug, name=slug.title(), best_score=best, last_analyzed_at=analyzed)


@pytest.mark.parametrize("days, status, message", [
    (None, ReEvaluationStatus.RECOMMENDED, "No previous analysis"),
    (0, ReEvaluationStatus.WAIT, "Wait 14 more days to re-evaluate"),
    (13, ReEvaluationStatus.WAIT, "Wait 1 more day to re-evaluate"),
    (14, ReEvaluationStatus.READY, "Ready to re-evaluate"),
    (44, ReEvaluationStatus.READY, "Ready to re-evaluate"),
    (45, ReEvaluationStatus.RECOMMENDED, "Re-evaluation recommended"),
])
def test_re_evaluation_gate(days, status, message):
    assert re_evaluation_status(days) == status
    assert re_evaluation_message(days) == message


def test_recommendations_sorted_weakest_first():
    summary = compute_improvement_path(
        55, SkillTier.TERCERA_A,
        [technique("serve", 70, 3), technique("backhand", 25, 20), technique("volley", 48, 60)],
        now=NOW,
    )

    assert [r.slug for r in summary.recommendations] == ["backhand", "volley", "serve"]
    backhand, volley, serve = summary.recommendations

    assert backhand.potential_impact == pytest.approx(22.666, abs=0.01)
    assert serve.potential_impact == 0
    assert "fundamental" in backhand.reason
    assert "biggest impact" in volley.reason
    assert serve.re_evaluation_status == ReEvaluationStatus.WAIT
    assert serve.suggest_re_evaluation is False
    assert backhand.suggest_re_evaluation is True
    assert volley.re_evaluation_status == ReEvaluationStatus.RECOMMENDED


def test_reason_for_above_fundamentals():
    summary = compute_improvement_path(
        75, SkillTier.SEGUNDA_A,
        [technique("serve", 95, 1), technique("forehand", 60, 1), technique("volley", 70, 1)],
        now=NOW,
    )
    forehand, volley, serve = summary.recommendations
    assert "below your average" in forehand.reason
    assert "solid" in volley.reason


@pytest.mark.parametrize("score, tier, expected", [
    (58.5, SkillTier.TERCERA_A, "very close to 2da B"),
    (56.0, SkillTier.TERCERA_A, "4.0 pts away from 2da B. Focus on Backhand"),
    (51.0, SkillTier.TERCERA_A, "To reach 2da B, focus on improving Backhand"),
])
def test_summary_message_bands(score, tier, expected):
    summary = compute_improvement_path(
        score, tier, [technique("backhand", 40, 20), technique("serve", 70, 20)], now=NOW
    )
    assert expected in summary.summary_message
    assert summary.next_tier == SkillTier.SEGUNDA_B
    assert summary.points_to_next_tier == pytest.approx(60 - score)


def test_top_tier_gets_maintenance_message():
    summary = compute_improvement_path(95, SkillTier.PRIMERA_A, [technique("serve", 95, 2)], now=NOW)
    assert summary.next_tier is None
    assert summary.points_to_next_tier == 0
    assert "top level" in summary.summary_message


def test_unranked_has_no_target_tier():
    summary = compute_improvement_path(None, SkillTier.UNRANKED, [technique("serve", 70, 2)], now=NOW)
    assert summary.next_tier is None
    assert summary.summary_message == "Analyze 2 more techniques to get your first category."


@pytest.mark.asyncio
async def test_service_loads_breakdown(db, tennis, tennis_techniques, score_ops, make_player):
    player = await make_player("ana")
    analyzed = NOW - timedelta(days=20)
    for item, score in zip(tennis_techniques[:3], (35, 60, 65)):
        await score_ops.record_technique_result(player.id, tennis.id, item.id, score, analyzed_at=analyzed)

    service = ImprovementService(db.session_factory)
    summary = await service.get_improvement_path(player.id, tennis.id, now=NOW)

    assert summary.skill_tier == SkillTier.TERCERA_A
    assert summary.recommendations[0].slug == tennis_techniques[0].slug
    assert summary.recommendations[0].days_since_analysis == 20
    assert summary.recommendations[0].re_evaluation_status == ReEvaluationStatus.READY


@pytest.mark.asyncio
async def test_service_without_sport_profile(db, tennis, make_player):
    player = await make_player("bruno")
    summary = await ImprovementService(db.session_factory).get_improvement_path(player.id, tennis.id, now=NOW)

    assert summary.skill_tier == SkillTier.UNRANKED
    assert summary.recommendations == []
    assert summary.summary_message == "Analyze 3 more techniques to get your first category."
