"""
ChorePulse backend package.

A FastAPI service for family chore tracking: tasks, approvals, points,
rewards, achievements, calendar sync and email campaigns, backed by
Postgres (or in-memory stores for development and tests).
"""
