"""
Data Models

Pydantic models for the Prometheus instant-query envelope, the merged
per-GPU and per-node records, and the API response envelope.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# Prometheus envelope

class SeriesSample(BaseModel):
    """One series from an instant query: labels plus [timestamp, "value"]."""
    metric: Dict[str, str] = Field(default_factory=dict)
    value: List[Any] = Field(default_factory=list)


class QueryData(BaseModel):
    """The `data` block of a Prometheus response."""
    model_config = ConfigDict(populate_by_name=True)

    result_type: str = Field("", alias="resultType")
    result: List[SeriesSample] = Field(default_factory=list)


class PrometheusResponse(BaseModel):
    """Decoded /api/v1/query response."""
    model_config = ConfigDict(populate_by_name=True)

    status: str
    data: QueryData = Field(default_factory=QueryData)
    error: Optional[str] = None
    error_type: Optional[str] = Field(None, alias="errorType")


# Records served to the dashboard

class GPUMetrics(BaseModel):
    """Merged metrics for one GPU, keyed by (node_name, gpu_index)."""
    node_name: str
    gpu_index: int
    gpu_name: str = ""
    utilization: float = 0.0
    memory_used: float = 0.0
    memory_total: float = 0.0
    memory_free: float = 0.0
    memory_utilization: float = 0.0
    temperature: float = 0.0
    power_draw: float = 0.0
    power_limit: float = 0.0
    timestamp: datetime


class GPUNode(BaseModel):
    """A node carrying GPUs."""
    node_name: str
    gpu_count: int = 0
    gpu_models: List[str] = Field(default_factory=list)


class GPUUtilization(BaseModel):
    """Lightweight utilization entry, values passed through from Prometheus."""
    node: str = ""
    gpu_index: str = ""
    utilization: Any = None
    timestamp: Any = None


class APIResponse(BaseModel):
    """Standard response envelope for every endpoint."""
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    message: Optional[str] = None
