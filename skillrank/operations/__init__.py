"""
Operations Layer

Business logic operations that compose database calls into workflows with
validation and business rules:
- PlayerOperations: PlayerProfile and SportProfile lifecycle
- ScoreOperations: Score Aggregator (technique results to tiers)
- ChallengeOperations: challenges and the matches they lead to
"""
