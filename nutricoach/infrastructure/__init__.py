"""
Infrastructure layer - external service integrations.

- snowflake: Database persistence for clients, coaches, links and plans

These wrappers translate between database rows and our domain models.
"""
