"""
FitCoach - coach/client training and nutrition planning backend.

This package contains the complete application:
- core: Framework-agnostic business logic
- infrastructure: Persistence integrations
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"
