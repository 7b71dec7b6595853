"""
Core utilities and configuration for the legislative ETL system.

Modules:
    config: Application configuration and environment variable management
    database: Async SQLAlchemy engine and session factories
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration

Usage:
    from core.config import settings
    from core.exceptions import NetworkError, StoreCommitError
    from core.logging import setup_logging
"""
