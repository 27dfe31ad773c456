"""
Monitoring Service - REST API over the document pipeline's bookkeeping

This package provides a FastAPI-based web service used by operators to
inspect and configure the document generation pipeline. It enables:

- Effective-dated reference data with full version history
- Effective-dated document configuration keyed on reference data
- Criteria search and status summaries over document requests
- Drill-down into request metadata, content blobs, batches and batch errors

Key Components:
    - main: FastAPI application and HTTP endpoint definitions
    - temporal_store: Versioned storage with logical delete
    - search: Criteria query builder, validation and paging
    - query: Filter expression tree rendered to SQL
    - database: SQLite schema and transactional sessions
    - security: Bearer token verification and roles
    - configuration: Config loading and merging logic

Usage:
    Run the API server with:
        uvicorn monitoring_service.main:app --reload --host 0.0.0.0 --port 8000
"""

__version__ = "0.1.0"
