"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from models.base import SyncStatus


# ============================================================================
# Batch Ingestion Schemas
# ============================================================================

class IngestStats(BaseModel):
    """Aggregate outcome of one batch submission"""
    received: int = 0
    inserted: int = 0
    updated: int = 0
    skipped_invalid: int = 0
    skipped_wanted: int = 0
    skipped_noise: int = 0
    errors: List[str] = Field(default_factory=list)


class IngestResponse(BaseModel):
    success: bool = True
    message: str
    stats: IngestStats


class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None


# ============================================================================
# Sync Schemas
# ============================================================================

class FeedStats(BaseModel):
    """Counters produced by processing one feed archive"""
    processed: int = 0
    added: int = 0
    skipped: int = 0
    errors: int = 0


class PartnerSyncResult(BaseModel):
    partner_id: int
    partner_name: str
    platform: str
    status: str = Field(..., description="success, error, timeout or skipped")
    feed_id: Optional[int] = None
    log_id: Optional[int] = None
    stats: FeedStats = Field(default_factory=FeedStats)
    error_message: Optional[str] = None


class SyncRunResult(BaseModel):
    started_at: datetime
    completed_at: Optional[datetime] = None
    partners_found: int = 0
    partners: List[PartnerSyncResult] = Field(default_factory=list)
    error_message: Optional[str] = None

    @property
    def totals(self) -> Dict[str, int]:
        totals = {"processed": 0, "added": 0, "skipped": 0, "errors": 0}
        for partner in self.partners:
            for key in totals:
                totals[key] += getattr(partner.stats, key)
        return totals


class SyncTriggerResponse(BaseModel):
    success: bool
    message: str
    duration_ms: int
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


# ============================================================================
# Health Check Schemas
# ============================================================================

class SyncLogInfo(BaseModel):
    """Latest sync log of a platform"""
    id: int
    platform: str
    status: SyncStatus
    items_found: int
    items_added: int
    error_message: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field("healthy", description="Overall system status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    database_connected: bool
    sync_logs: List[SyncLogInfo] = Field(default_factory=list)
    total_platforms: int = 0
    failed_platforms: int = 0
    running_platforms: int = 0

    @model_validator(mode="after")
    def determine_status(self):
        """Derive overall status from database reachability and last runs"""
        if not self.database_connected:
            self.status = "unhealthy"
        elif self.total_platforms and self.failed_platforms >= self.total_platforms:
            self.status = "unhealthy"
        elif self.failed_platforms:
            self.status = "degraded"
        else:
            self.status = "healthy"
        return self
