"""Pydantic schemas for the control API."""

from typing import List, Optional

from pydantic import BaseModel


class BanRequest(BaseModel):
    """Request model for banning a user from this host."""
    user_id: str
    name: str
    reason: str = ""


class BanResponse(BaseModel):
    """Response model for a single ban."""
    user_id: str
    name: str
    reason: str


class BanCreatedResponse(BanResponse):
    """Response model for a host-side ban."""
    synchronized: bool


class BanListResponse(BaseModel):
    """Response model for the synchronized ban snapshot."""
    bans: List[BanResponse]
    count: int


class UnbanResponse(BaseModel):
    """Response model for a host-side unban."""
    user_id: str
    synchronized: bool


class HealthResponse(BaseModel):
    """Response model for engine health."""
    status: str
    state: str
    halted: bool
    bootstrapped: bool
    backend: str
    snapshot_size: int
    cycles_completed: int
    last_error: Optional[str] = None


class SyncTriggerResponse(BaseModel):
    """Response model for a manual sync trigger."""
    triggered: bool
    state: str


class ErrorResponse(BaseModel):
    """Response model for errors."""
    detail: str
    code: str
