"""
Infrastructure layer - external service integrations.

- snowflake: Database persistence (program state, sessions, medals)

These wrappers translate between database rows and our domain models.
"""
