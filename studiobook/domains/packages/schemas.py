"""Package schemas for API validation."""
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class PackageBalanceResponse(BaseModel):
    """Session balance of one package, as seen by one participant."""

    model_config = ConfigDict(from_attributes=True)

    package_id: UUID
    name: str
    total_sessions: int
    used_sessions: int
    remaining_sessions: int
    duration_minutes: int
    is_active: bool
    is_shared: bool
    participant_count: int
