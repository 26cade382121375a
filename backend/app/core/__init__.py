"""
Core package — cross-cutting concerns.

Modules:
    config          — environment variables & settings
    logging_config  — structured JSON logging
    errors          — exception hierarchy & handlers
    middleware      — access log and correlation IDs
    health          — health check aggregation
    database        — async SQLAlchemy engine and sessions
    cache           — Redis cache layer
"""
