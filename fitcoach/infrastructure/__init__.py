"""
Infrastructure layer - external service integrations.

Each module wraps a persistence backend behind the RelationalStore
protocol from fitcoach.core.store:
- memory: in-memory store for mock mode and tests
- snowflake: production database

These wrappers translate between store primitives and the backend; the
core never sees SQL.
"""
