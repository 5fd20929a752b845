"""
Core utilities and configuration for the import orchestration service.

Modules:
    config: Application configuration and environment variable management
    database: Database engine and async session management
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration
    cancel: Per-batch cancellation tokens

Usage:
    from core.config import settings
    from core.database import async_session_maker
    from core.exceptions import BatchNotFoundError, RateLimitError
    from core.logging import setup_logging
"""

