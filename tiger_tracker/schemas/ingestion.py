from datetime import datetime
from typing import Dict

from pydantic import BaseModel, Field


class CycleReport(BaseModel):
    source: str
    timestamp: datetime = Field(..., description="Shared timestamp of every observation in the batch")
    records: int
    prices: Dict[str, float]
    duration_ms: int
