"""
Velo Program - backend for a bat-speed training program.

This package contains the complete application:
- core: Framework-agnostic business logic
- infrastructure: Database persistence
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"
