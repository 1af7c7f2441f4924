"""
Pydantic schemas package exports.
"""

from app.schemas.cron import CredentialResetResponse, SchedulerStatusResponse

__all__ = ["CredentialResetResponse", "SchedulerStatusResponse"]
