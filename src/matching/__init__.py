"""
Matching & Scoring Engine.

- scoring: hard filters, soft score terms and scoring configuration
- engine: MatchingEngine (single-pass and partitioned matching)
"""
