"""
GPU Monitoring API Server

FastAPI application serving GPU metrics pulled from Prometheus:
- /api/health - Prometheus connectivity probe
- /api/v1/gpu/metrics - Merged per-GPU metrics
- /api/v1/gpu/nodes - GPU nodes with models and counts
- /api/v1/gpu/utilization - Utilization only
- /metrics - This service's own Prometheus metrics

Run with:
    gpu-monitoring serve

Or:
    uvicorn --factory gpu_monitoring.server:create_app --port 8080
"""

import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from . import __version__
from .config import MonitorConfig, get_config
from .exceptions import PrometheusError
from .instrumentation import metrics_endpoint
from .logging_config import get_logger, get_uvicorn_log_config, setup_logging
from .middleware import install_middleware
from .models import APIResponse
from .prometheus import PrometheusClient


logger = get_logger(__name__)


def get_prometheus_client(request: Request) -> PrometheusClient:
    """Dependency returning the app's shared Prometheus client."""
    return request.app.state.prometheus


def get_app_config(request: Request) -> MonitorConfig:
    return request.app.state.config


def _respond(status_code: int, body: APIResponse) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", exclude_none=True))


def _success(data: Any, message: str) -> JSONResponse:
    return _respond(200, APIResponse(success=True, data=data, message=message))


def _failure(status_code: int, message: str) -> JSONResponse:
    return _respond(status_code, APIResponse(success=False, error=message))


def create_gpu_router() -> APIRouter:
    """Create the health and GPU routes."""
    router = APIRouter(tags=["gpu"])

    @router.get("/api/health")
    async def health_check(
        client: PrometheusClient = Depends(get_prometheus_client),
        config: MonitorConfig = Depends(get_app_config),
    ):
        """Report healthy only if Prometheus answers the `up` query."""
        try:
            await client.check_connection(timeout=config.health_timeout)
        except PrometheusError as e:
            logger.error(f"Health check failed: {e}")
            return _failure(503, "Prometheus connection failed")

        return _success(
            {
                "status": "healthy",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "version": __version__,
            },
            "Service is healthy",
        )

    @router.get("/api/v1/gpu/metrics")
    async def get_gpu_metrics(client: PrometheusClient = Depends(get_prometheus_client)):
        """All GPUs with utilization, memory, temperature and power merged per GPU."""
        try:
            metrics = await client.get_gpu_metrics()
        except PrometheusError as e:
            logger.error(f"Error getting GPU metrics: {e}")
            return _failure(500, "Failed to retrieve GPU metrics")

        return _success(
            [m.model_dump(mode="json") for m in metrics],
            "GPU metrics retrieved successfully",
        )

    @router.get("/api/v1/gpu/nodes")
    async def get_gpu_nodes(client: PrometheusClient = Depends(get_prometheus_client)):
        """Nodes carrying GPUs."""
        try:
            nodes = await client.get_gpu_nodes()
        except PrometheusError as e:
            logger.error(f"Error getting GPU nodes: {e}")
            return _failure(500, "Failed to retrieve GPU nodes")

        return _success(
            [n.model_dump(mode="json") for n in nodes],
            "GPU nodes retrieved successfully",
        )

    @router.get("/api/v1/gpu/utilization")
    async def get_gpu_utilization(client: PrometheusClient = Depends(get_prometheus_client)):
        """Utilization per GPU, values as reported by Prometheus."""
        try:
            utilization = await client.get_gpu_utilization()
        except PrometheusError as e:
            logger.error(f"Error getting GPU utilization: {e}")
            return _failure(500, "Failed to retrieve GPU utilization")

        return _success(
            [u.model_dump(mode="json") for u in utilization],
            "GPU utilization retrieved successfully",
        )

    return router


def create_app(
    config: Optional[MonitorConfig] = None,
    prometheus_client: Optional[PrometheusClient] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Settings (default: read from environment)
        prometheus_client: Client to use instead of one built from config
    """
    config = config or get_config()
    client = prometheus_client or PrometheusClient(config.prometheus_url, timeout=config.query_timeout)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("GPU Monitoring API starting", extra={
            "version": __version__,
            "prometheus_url": config.prometheus_url,
        })
        yield
        await client.aclose()
        logger.info("GPU Monitoring API stopped")

    app = FastAPI(
        title="GPU Monitoring API",
        description="GPU metrics from Prometheus for the monitoring dashboard",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.prometheus = client

    install_middleware(app, config.cors_origins)

    app.include_router(create_gpu_router())
    app.add_api_route("/metrics", metrics_endpoint, methods=["GET"], include_in_schema=False)

    # Frontend build, mounted last so API routes win
    if os.path.isdir(config.static_dir):
        app.mount("/", StaticFiles(directory=config.static_dir, html=True), name="static")

    return app


def main(config: Optional[MonitorConfig] = None):
    """Run the API server."""
    import uvicorn

    config = config or get_config()
    setup_logging(level=config.log_level, json_format=config.log_json)

    logger.info("Starting GPU Monitoring API Server", extra={
        "prometheus_url": config.prometheus_url,
        "port": config.port,
    })

    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
        log_config=get_uvicorn_log_config(json_format=config.log_json),
        access_log=False,
        timeout_graceful_shutdown=30,
    )


if __name__ == "__main__":
    main()
