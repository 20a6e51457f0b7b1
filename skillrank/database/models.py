from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Text, Float,
    ForeignKey, Enum as SQLEnum, UniqueConstraint, Index
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func
from enum import Enum
from typing import Optional

from skillrank.config import Config

Base = declarative_base()

class SkillTier(Enum):
    UNRANKED = "UNRANKED"
    QUINTA_B = "QUINTA_B"
    QUINTA_A = "QUINTA_A"
    CUARTA_B = "CUARTA_B"
    CUARTA_A = "CUARTA_A"
    TERCERA_B = "TERCERA_B"
    TERCERA_A = "TERCERA_A"
    SEGUNDA_B = "SEGUNDA_B"
    SEGUNDA_A = "SEGUNDA_A"
    PRIMERA_B = "PRIMERA_B"
    PRIMERA_A = "PRIMERA_A"

class MatchResult(Enum):
    WIN = "WIN"
    LOSS = "LOSS"
    NO_SHOW = "NO_SHOW"

class ChallengeStatus(Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

class MatchConfirmationState(Enum):
    AWAITING_BOTH = "AWAITING_BOTH"
    AWAITING_OPPONENT = "AWAITING_OPPONENT"
    RATED = "RATED"

class RankingPeriod(Enum):
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    ALL_TIME = "ALL_TIME"

class RankingCategory(Enum):
    GLOBAL = "GLOBAL"
    COUNTRY = "COUNTRY"
    TIER = "TIER"


class Sport(Base):
    __tablename__ = 'sports'

    id = Column(Integer, primary_key=True)
    slug = Column(String(50), nullable=False, unique=True)
    name = Column(String(100), nullable=False)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=func.now())

    techniques = relationship("Technique", back_populates="sport")

    def __repr__(self):
        return f"<Sport(slug='{self.slug}')>"

class Technique(Base):
    __tablename__ = 'techniques'

    id = Column(Integer, primary_key=True)
    sport_id = Column(Integer, ForeignKey('sports.id'), nullable=False, index=True)
    slug = Column(String(100), nullable=False)
    name = Column(String(200), nullable=False)

    created_at = Column(DateTime, default=func.now())

    sport = relationship("Sport", back_populates="techniques")

    __table_args__ = (UniqueConstraint('sport_id', 'slug'),)

    def __repr__(self):
        return f"<Technique(slug='{self.slug}', sport_id={self.sport_id})>"

class PlayerProfile(Base):
    __tablename__ = 'player_profiles'

    id = Column(Integer, primary_key=True)
    user_id = Column(String(100), unique=True, nullable=False, index=True)
    display_name = Column(String(100))

    # Location, used for ranking scopes
    country = Column(String(2), nullable=False, default=Config.DEFAULT_COUNTRY, index=True)
    region = Column(String(100))
    city = Column(String(100))

    created_at = Column(DateTime, default=func.now())

    sport_profiles = relationship("SportProfile", back_populates="profile")

    def __repr__(self):
        return f"<PlayerProfile(user_id='{self.user_id}', country='{self.country}')>"

class SportProfile(Base):
    __tablename__ = 'sport_profiles'

    id = Column(Integer, primary_key=True)
    profile_id = Column(Integer, ForeignKey('player_profiles.id'), nullable=False, index=True)
    sport_id = Column(Integer, ForeignKey('sports.id'), nullable=False, index=True)

    # Score Aggregator fields
    composite_score = Column(Float, nullable=True)
    effective_score = Column(Float, nullable=True)
    skill_tier = Column(SQLEnum(SkillTier), default=SkillTier.UNRANKED, nullable=False)
    total_analyses = Column(Integer, default=0, nullable=False)
    total_techniques = Column(Integer, default=0, nullable=False)
    last_score_update = Column(DateTime, nullable=True)

    # Rating Engine fields
    match_elo = Column(Integer, default=Config.STARTING_ELO, nullable=False)
    matches_played = Column(Integer, default=0, nullable=False)
    matches_won = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=func.now())

    profile = relationship("PlayerProfile", back_populates="sport_profiles")
    sport = relationship("Sport")
    technique_scores = relationship("TechniqueScore", back_populates="sport_profile")

    __table_args__ = (
        UniqueConstraint('profile_id', 'sport_id'),
        Index('ix_sport_profiles_ranking', 'sport_id', 'effective_score'),
    )

    @property
    def win_rate(self) -> float:
        if not self.matches_played:
            return 0.0
        return (self.matches_won / self.matches_played) * 100

    @property
    def is_provisional(self) -> bool:
        return (self.matches_played or 0) < Config.PROVISIONAL_MATCH_COUNT

    @property
    def is_ranked(self) -> bool:
        return self.effective_score is not None and self.skill_tier != SkillTier.UNRANKED

    def __repr__(self):
        return (f"<SportProfile(profile_id={self.profile_id}, sport_id={self.sport_id}, "
                f"tier={self.skill_tier}, elo={self.match_elo})>")

class TechniqueScore(Base):
    __tablename__ = 'technique_scores'

    id = Column(Integer, primary_key=True)
    profile_id = Column(Integer, ForeignKey('player_profiles.id'), nullable=False, index=True)
    sport_profile_id = Column(Integer, ForeignKey('sport_profiles.id'), nullable=False, index=True)
    technique_id = Column(Integer, ForeignKey('techniques.id'), nullable=False)

    best_score = Column(Float, nullable=False)  # Never decreases
    last_score = Column(Float, nullable=False)
    analysis_count = Column(Integer, default=0, nullable=False)
    last_analyzed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    sport_profile = relationship("SportProfile", back_populates="technique_scores")
    technique = relationship("Technique")

    __table_args__ = (UniqueConstraint('profile_id', 'technique_id'),)

    def __repr__(self):
        return f"<TechniqueScore(profile_id={self.profile_id}, technique_id={self.technique_id}, best={self.best_score})>"

class Challenge(Base):
    __tablename__ = 'challenges'

    id = Column(Integer, primary_key=True)
    sport_id = Column(Integer, ForeignKey('sports.id'), nullable=False)
    challenger_id = Column(Integer, ForeignKey('sport_profiles.id'), nullable=False, index=True)
    challenged_id = Column(Integer, ForeignKey('sport_profiles.id'), nullable=False, index=True)
    status = Column(SQLEnum(ChallengeStatus), default=ChallengeStatus.PENDING, nullable=False)
    message = Column(Text)

    created_at = Column(DateTime, default=func.now())
    accepted_at = Column(DateTime)
    completed_at = Column(DateTime)

    def __repr__(self):
        return f"<Challenge(id={self.id}, status={self.status})>"

class Match(Base):
    """
    A contest between two SportProfiles of the same sport.

    Each side self-reports a result and confirms independently. The rating
    update is applied inside the transaction that records the second
    confirmation, and the row is immutable after that.
    """
    __tablename__ = 'matches'

    id = Column(Integer, primary_key=True)
    sport_id = Column(Integer, ForeignKey('sports.id'), nullable=False)
    player1_id = Column(Integer, ForeignKey('sport_profiles.id'), nullable=False, index=True)
    player2_id = Column(Integer, ForeignKey('sport_profiles.id'), nullable=False, index=True)
    challenge_id = Column(Integer, ForeignKey('challenges.id'), nullable=True)

    # Self-reported results, one per side
    player1_result = Column(SQLEnum(MatchResult), nullable=True)
    player2_result = Column(SQLEnum(MatchResult), nullable=True)
    player1_confirmed = Column(Boolean, default=False, nullable=False)
    player2_confirmed = Column(Boolean, default=False, nullable=False)

    # Null until the rating update is applied
    player1_elo_change = Column(Integer, nullable=True)
    player2_elo_change = Column(Integer, nullable=True)

    score = Column(String(100))
    played_at = Column(DateTime, nullable=True)
    rated_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=func.now())

    player1 = relationship("SportProfile", foreign_keys=[player1_id])
    player2 = relationship("SportProfile", foreign_keys=[player2_id])
    challenge = relationship("Challenge")

    @property
    def confirmation_state(self) -> MatchConfirmationState:
        if self.player1_confirmed and self.player2_confirmed:
            return MatchConfirmationState.RATED
        if self.player1_confirmed or self.player2_confirmed:
            return MatchConfirmationState.AWAITING_OPPONENT
        return MatchConfirmationState.AWAITING_BOTH

    @property
    def is_rated(self) -> bool:
        return self.player1_elo_change is not None and self.player2_elo_change is not None

    def elo_change_for(self, sport_profile_id: int) -> Optional[int]:
        if sport_profile_id == self.player1_id:
            return self.player1_elo_change
        if sport_profile_id == self.player2_id:
            return self.player2_elo_change
        return None

    def __repr__(self):
        return (f"<Match(id={self.id}, p1={self.player1_id}, p2={self.player2_id}, "
                f"state={self.confirmation_state.value})>")

class RankingSnapshot(Base):
    __tablename__ = 'ranking_snapshots'

    id = Column(Integer, primary_key=True)
    profile_id = Column(Integer, ForeignKey('player_profiles.id'), nullable=False, index=True)
    sport_id = Column(Integer, ForeignKey('sports.id'), nullable=False)
    sport_profile_id = Column(Integer, ForeignKey('sport_profiles.id'), nullable=False)

    period = Column(SQLEnum(RankingPeriod), nullable=False)
    period_key = Column(String(10), nullable=False)  # 2026-10, 2026-W42, all
    category = Column(SQLEnum(RankingCategory), nullable=False)
    scope_value = Column(String(50), nullable=False, default='')  # country code or tier name

    rank = Column(Integer, nullable=False)
    previous_rank = Column(Integer, nullable=True)
    effective_score = Column(Float, nullable=False)
    skill_tier = Column(SQLEnum(SkillTier), nullable=False)

    computed_at = Column(DateTime, default=func.now())

    profile = relationship("PlayerProfile")

    __table_args__ = (
        UniqueConstraint('profile_id', 'sport_id', 'period', 'period_key', 'category', 'scope_value',
                         name='uq_ranking_snapshot_scope'),
        Index('ix_ranking_snapshots_lookup', 'sport_id', 'period', 'category', 'scope_value', 'period_key'),
    )

    @property
    def movement(self) -> Optional[int]:
        """Positions gained since the previous snapshot (positive = climbed)."""
        if self.previous_rank is None:
            return None
        return self.previous_rank - self.rank

    def __repr__(self):
        return (f"<RankingSnapshot(profile_id={self.profile_id}, {self.category.value}:{self.scope_value}, "
                f"{self.period_key}, rank={self.rank})>")
