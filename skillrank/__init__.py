"""SkillRank - skill scoring and competitive rating engine."""

__version__ = "1.0.0"
