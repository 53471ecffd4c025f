"""Shared API dependencies."""
from fastapi import Request

from ballotguard.core.security import require_permission, verify_admin_token
from ballotguard.db.access import DataAccessLayer


def get_data_access(request: Request) -> DataAccessLayer:
    """The data access layer owned by the application lifespan."""
    return request.app.state.data_access


__all__ = ["get_data_access", "require_permission", "verify_admin_token"]
