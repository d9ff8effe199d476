"""
Pytest configuration and fixtures for GPU monitoring tests
"""

import os
import sys
import pytest
from pathlib import Path
from typing import Callable, Dict, Union

import httpx

# Add src to path
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))


GIB = 1024 ** 3


def series(labels: dict, value, timestamp: float = 1700000000.0) -> dict:
    """Build one instant-vector series as Prometheus returns it."""
    return {"metric": labels, "value": [timestamp, value]}


def vector(*result) -> dict:
    """Build a successful instant-query envelope."""
    return {"status": "success", "data": {"resultType": "vector", "result": list(result)}}


def mock_prometheus(routes: Dict[str, Union[dict, Callable]]) -> httpx.AsyncClient:
    """
    httpx client answering /api/v1/query from a PromQL -> payload table.

    A payload may be a dict (served as JSON with 200), an httpx.Response,
    or a callable taking the request. Unknown queries return an empty vector.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/v1/query"
        promql = request.url.params["query"]
        payload = routes.get(promql, vector())
        if callable(payload):
            payload = payload(request)
        if isinstance(payload, httpx.Response):
            return payload
        return httpx.Response(200, json=payload)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def refuse_connection(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("Connection refused", request=request)


@pytest.fixture
def mock_env():
    """Fixture to set up mock environment variables."""
    original_env = os.environ.copy()

    os.environ.update({
        "PROMETHEUS_URL": "http://test-prometheus:9090",
        "PORT": "9999",
    })

    yield os.environ

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def gpu_metric_payloads():
    """One node with two GPUs across every GPU metric query."""
    n0 = {"node": "gpu-node-1", "gpu": "0"}
    n1 = {"node": "gpu-node-1", "gpu": "1"}
    return {
        "nvidia_smi_utilization_gpu_ratio * 100": vector(series(n0, "75.5"), series(n1, "10")),
        "nvidia_smi_memory_used_bytes": vector(series(n0, str(8 * GIB)), series(n1, str(4 * GIB))),
        "nvidia_smi_memory_total_bytes": vector(series(n0, str(16 * GIB)), series(n1, str(16 * GIB))),
        "nvidia_smi_memory_free_bytes": vector(series(n0, str(8 * GIB)), series(n1, str(12 * GIB))),
        "nvidia_smi_temperature_gpu_celsius": vector(series(n0, "65"), series(n1, "41")),
        "nvidia_smi_power_draw_watts": vector(series(n0, "250"), series(n1, "70.5")),
        "nvidia_smi_enforced_power_limit_watts": vector(series(n0, "300"), series(n1, "300")),
        "nvidia_smi_gpu_info": vector(
            series({**n0, "name": "NVIDIA Tesla V100"}, "1"),
            series({**n1, "name": "NVIDIA Tesla V100"}, "1"),
        ),
    }
