"""
FastAPI service for AlertCPL.

Provides:
- GET /health - Database, credential and engine checks
- GET /engine/status, POST /engine/trigger - Engine state and manual trigger
- /api/accounts, /api/cpl-logs, /api/alerts - Dashboard endpoints
"""

from alertcpl.api.app import create_app

__all__ = ["create_app"]
