"""
GPU Monitoring API

Read-only HTTP API that reshapes Prometheus GPU metrics for a dashboard.
"""

__version__ = "1.0.0"

from .exceptions import FanOutError, PrometheusError, ProtocolError, QueryError, TransportError
from .models import GPUMetrics, GPUNode, GPUUtilization
from .prometheus import PrometheusClient, parse_gpu_metrics
from .server import create_app

__all__ = [
    "create_app",
    "PrometheusClient",
    "parse_gpu_metrics",
    "GPUMetrics",
    "GPUNode",
    "GPUUtilization",
    "PrometheusError",
    "TransportError",
    "ProtocolError",
    "QueryError",
    "FanOutError",
]
