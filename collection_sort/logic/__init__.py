"""Ranking and move orchestration."""
