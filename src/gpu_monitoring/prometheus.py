"""
Prometheus Client

Runs PromQL instant queries against a Prometheus server and reshapes the
results into per-GPU and per-node records.

The label schema is the nvidia_smi_exporter one: every series carries a
`node` label and a `gpu` index label, and `nvidia_smi_gpu_info` carries
the model in `name`.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import httpx

from .exceptions import FanOutError, PrometheusError, ProtocolError, QueryError, TransportError
from .instrumentation import record_prometheus_query
from .logging_config import get_logger
from .models import GPUMetrics, GPUNode, GPUUtilization, PrometheusResponse, SeriesSample


logger = get_logger(__name__)

BYTES_PER_GB = 1024 ** 3

NODE_LABEL = "node"
GPU_LABEL = "gpu"
NAME_LABEL = "name"

GPU_INFO_METRIC = "nvidia_smi_gpu_info"

# Logical name -> PromQL. Every name needs a rule in _FIELD_RULES.
GPU_METRIC_QUERIES: Dict[str, str] = {
    "utilization": "nvidia_smi_utilization_gpu_ratio * 100",
    "memory_used": "nvidia_smi_memory_used_bytes",
    "memory_total": "nvidia_smi_memory_total_bytes",
    "memory_free": "nvidia_smi_memory_free_bytes",
    "temperature": "nvidia_smi_temperature_gpu_celsius",
    "power_draw": "nvidia_smi_power_draw_watts",
    "power_limit": "nvidia_smi_enforced_power_limit_watts",
    "gpu_name": GPU_INFO_METRIC,
}

UTILIZATION_QUERY = GPU_METRIC_QUERIES["utilization"]
NODES_QUERY = f"group by ({NODE_LABEL}, {NAME_LABEL}) ({GPU_INFO_METRIC})"
HEALTH_QUERY = "up"

# Query name -> (GPUMetrics field, divisor)
_FIELD_RULES: Dict[str, Tuple[str, float]] = {
    "utilization": ("utilization", 1.0),
    "memory_used": ("memory_used", BYTES_PER_GB),
    "memory_total": ("memory_total", BYTES_PER_GB),
    "memory_free": ("memory_free", BYTES_PER_GB),
    "temperature": ("temperature", 1.0),
    "power_draw": ("power_draw", 1.0),
    "power_limit": ("power_limit", 1.0),
}


def parse_sample_value(sample: SeriesSample) -> Optional[float]:
    """Return the numeric value of a sample, or None if it is malformed."""
    if len(sample.value) < 2:
        return None
    raw = sample.value[1]
    if not isinstance(raw, str):
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def parse_gpu_metrics(
    results: Dict[str, PrometheusResponse],
    now: Optional[datetime] = None,
) -> List[GPUMetrics]:
    """
    Merge per-query result sets into one record per (node, gpu index).

    Samples without both join labels, with a non-integer gpu label, or
    with a non-numeric value are skipped. Memory utilization is always
    derived from used/total.

    Args:
        results: Query name -> decoded response
        now: Capture timestamp for new records (default: current UTC time)

    Returns:
        Records sorted by (node_name, gpu_index)
    """
    captured_at = now or datetime.now(timezone.utc)
    records: Dict[Tuple[str, int], GPUMetrics] = {}

    for query_name, response in results.items():
        for sample in response.data.result:
            node_name = sample.metric.get(NODE_LABEL, "")
            gpu_label = sample.metric.get(GPU_LABEL, "")
            if not node_name or not gpu_label:
                continue

            try:
                gpu_index = int(gpu_label)
            except ValueError:
                continue

            value = parse_sample_value(sample)
            if value is None:
                continue

            key = (node_name, gpu_index)
            record = records.get(key)
            if record is None:
                record = GPUMetrics(node_name=node_name, gpu_index=gpu_index, timestamp=captured_at)
                records[key] = record

            if query_name == "gpu_name":
                gpu_name = sample.metric.get(NAME_LABEL)
                if gpu_name:
                    record.gpu_name = gpu_name
                continue

            rule = _FIELD_RULES.get(query_name)
            if rule is None:
                continue
            field_name, divisor = rule
            setattr(record, field_name, value / divisor)

    for record in records.values():
        if record.memory_total > 0:
            record.memory_utilization = record.memory_used / record.memory_total * 100

    return [records[key] for key in sorted(records)]


def parse_utilization(response: PrometheusResponse) -> List[GPUUtilization]:
    """Project raw utilization series to node/gpu/value/timestamp entries."""
    entries = []
    for sample in response.data.result:
        if len(sample.value) < 2:
            continue
        entries.append(GPUUtilization(
            node=sample.metric.get(NODE_LABEL, ""),
            gpu_index=sample.metric.get(GPU_LABEL, ""),
            utilization=sample.value[1],
            timestamp=sample.value[0],
        ))
    return entries


def _escape_label_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


class PrometheusClient:
    """Client for the Prometheus HTTP query API."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize Prometheus client.

        Args:
            base_url: Prometheus base URL, e.g. http://prometheus:9090
            timeout: Default per-query and per-fan-out timeout in seconds
            http_client: Optional shared httpx client. If not provided,
                one is created and closed by aclose().
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "PrometheusClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def query(self, promql: str, timeout: Optional[float] = None) -> PrometheusResponse:
        """
        Execute an instant query evaluated at the current time.

        Args:
            promql: PromQL query string
            timeout: Request timeout in seconds (default: client timeout)

        Returns:
            The decoded response, unchanged

        Raises:
            TransportError: Prometheus unreachable or timed out
            ProtocolError: Non-200 status or undecodable body
            QueryError: Response status is not "success"
        """
        url = f"{self.base_url}/api/v1/query"
        params = {"query": promql, "time": str(int(time.time()))}

        outcome = "cancelled"
        start = time.perf_counter()
        try:
            try:
                response = await self._client.get(
                    url, params=params, timeout=timeout or self.timeout
                )
            except httpx.RequestError as e:
                outcome = "transport_error"
                raise TransportError(f"executing request: {type(e).__name__}: {e}") from e

            if response.status_code != 200:
                outcome = "protocol_error"
                raise ProtocolError(
                    f"prometheus API error: status {response.status_code}, body: {response.text[:200]}",
                    status_code=response.status_code,
                )

            try:
                result = PrometheusResponse.model_validate(response.json())
            except ValueError as e:  # includes pydantic.ValidationError
                outcome = "protocol_error"
                raise ProtocolError(f"decoding response: {e}", status_code=response.status_code) from e

            if result.status != "success":
                outcome = "query_error"
                raise QueryError(result.error_type or "", result.error or "")

            outcome = "success"
            return result
        finally:
            record_prometheus_query(outcome, time.perf_counter() - start)

    async def _named_query(self, name: str, promql: str) -> Tuple[str, PrometheusResponse]:
        try:
            return name, await self.query(promql)
        except PrometheusError as e:
            raise FanOutError(name, e) from e

    async def run_queries(self, queries: Dict[str, str]) -> Dict[str, PrometheusResponse]:
        """
        Run named queries concurrently.

        Each task returns its own (name, response) pair; the mapping is
        assembled after all of them finish.

        Raises:
            FanOutError: naming the first query that failed
        """
        pairs = await asyncio.gather(
            *(self._named_query(name, promql) for name, promql in queries.items())
        )
        return dict(pairs)

    async def _within_deadline(self, awaitable, what: str):
        """Await `awaitable` bounded by the client timeout as a whole."""
        try:
            return await asyncio.wait_for(awaitable, self.timeout)
        except asyncio.TimeoutError as e:
            raise TransportError(f"{what} timed out after {self.timeout}s") from e

    async def get_gpu_metrics(self) -> List[GPUMetrics]:
        """Fetch every GPU metric and merge them per GPU."""
        results = await self._within_deadline(self.run_queries(GPU_METRIC_QUERIES), "GPU metric queries")

        metrics = parse_gpu_metrics(results)
        logger.debug("Merged GPU metrics", extra={"gpus": len(metrics)})
        return metrics

    async def get_gpu_utilization(self) -> List[GPUUtilization]:
        """Fetch utilization only, without the join step."""
        response = await self._within_deadline(self.query(UTILIZATION_QUERY), "GPU utilization query")
        return parse_utilization(response)

    async def count_node_gpus(self, node_name: str) -> int:
        """
        Count GPUs on one node.

        Returns 0 when the query fails or its value cannot be parsed.
        """
        promql = f'count by ({NODE_LABEL}) ({GPU_INFO_METRIC}{{{NODE_LABEL}="{_escape_label_value(node_name)}"}})'
        try:
            response = await self.query(promql)
        except PrometheusError as e:
            logger.warning(f"GPU count query failed for node {node_name}: {e}")
            return 0

        if not response.data.result:
            return 0
        value = parse_sample_value(response.data.result[0])
        if value is None:
            return 0
        try:
            return int(value)
        except (ValueError, OverflowError):
            return 0

    async def get_gpu_nodes(self) -> List[GPUNode]:
        """
        List nodes carrying GPUs with their distinct models and GPU counts.

        A failing grouping query raises; a failing per-node count query
        leaves that node's gpu_count at 0. Both rounds share one deadline.
        """
        return await self._within_deadline(self._collect_gpu_nodes(), "GPU node queries")

    async def _collect_gpu_nodes(self) -> List[GPUNode]:
        response = await self.query(NODES_QUERY)

        nodes: Dict[str, GPUNode] = {}
        for sample in response.data.result:
            node_name = sample.metric.get(NODE_LABEL, "")
            if not node_name:
                continue

            node = nodes.get(node_name)
            if node is None:
                node = GPUNode(node_name=node_name)
                nodes[node_name] = node

            model = sample.metric.get(NAME_LABEL, "")
            if model and model not in node.gpu_models:
                node.gpu_models.append(model)

        counts = await asyncio.gather(*(self.count_node_gpus(name) for name in nodes))
        for node, count in zip(nodes.values(), counts):
            node.gpu_count = count

        return sorted(nodes.values(), key=lambda n: n.node_name)

    async def check_connection(self, timeout: Optional[float] = None) -> PrometheusResponse:
        """Probe Prometheus with the `up` query; raises PrometheusError on failure."""
        return await self.query(HEALTH_QUERY, timeout=timeout)
