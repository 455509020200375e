"""
NutriCoach - coach assignment service for a nutrition coaching app.

This package contains the complete application:
- core: Framework-agnostic assignment logic
- infrastructure: Snowflake persistence
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"
