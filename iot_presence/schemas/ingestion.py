from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class ListenerStatusOut(BaseModel):
    state: str
    retry_count: int
    processed: int
    malformed: int
    failed: int
    last_event_at: Optional[datetime]
    connected_since: Optional[datetime]
    last_error: Optional[str]


class HealthOut(BaseModel):
    status: str
    timestamp: datetime
    backend: str
    database: str
    ingestion: Optional[ListenerStatusOut]
