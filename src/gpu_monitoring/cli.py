#!/usr/bin/env python3
"""
GPU Monitoring CLI

Usage:
    gpu-monitoring serve      - Run the API server
    gpu-monitoring gpu        - Show per-GPU metrics from Prometheus
    gpu-monitoring nodes      - List GPU nodes
    gpu-monitoring health     - Check Prometheus connectivity
"""

import argparse
import asyncio
import sys

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .config import MonitorConfig, get_config
from .exceptions import PrometheusError
from .prometheus import PrometheusClient

console = Console()


def utilization_style(utilization: float) -> str:
    if utilization < 30:
        return "green"
    if utilization < 70:
        return "yellow"
    return "red"


def temperature_style(celsius: float) -> str:
    if celsius < 60:
        return "green"
    if celsius < 80:
        return "yellow"
    return "red"


def _client(config: MonitorConfig) -> PrometheusClient:
    return PrometheusClient(config.prometheus_url, timeout=config.query_timeout)


async def _fetch_gpus(config: MonitorConfig):
    async with _client(config) as client:
        return await client.get_gpu_metrics()


async def _fetch_nodes(config: MonitorConfig):
    async with _client(config) as client:
        return await client.get_gpu_nodes()


async def _probe(config: MonitorConfig):
    async with _client(config) as client:
        return await client.check_connection(timeout=config.health_timeout)


def build_gpu_table(metrics) -> Table:
    """Render GPU records as a table, colour coded like the dashboard."""
    table = Table(title="GPU Metrics", box=box.ROUNDED)
    table.add_column("Node", style="cyan")
    table.add_column("GPU")
    table.add_column("Model")
    table.add_column("Util", justify="right")
    table.add_column("Memory", justify="right")
    table.add_column("Mem %", justify="right")
    table.add_column("Temp", justify="right")
    table.add_column("Power", justify="right")

    for m in metrics:
        util = utilization_style(m.utilization)
        temp = temperature_style(m.temperature)
        table.add_row(
            m.node_name,
            str(m.gpu_index),
            m.gpu_name or "-",
            f"[{util}]{m.utilization:.1f}%[/{util}]",
            f"{m.memory_used:.1f} / {m.memory_total:.1f} GB",
            f"{m.memory_utilization:.1f}%",
            f"[{temp}]{m.temperature:.1f}°C[/{temp}]",
            f"{m.power_draw:.0f} / {m.power_limit:.0f} W",
        )
    return table


def build_node_table(nodes) -> Table:
    table = Table(title="GPU Nodes", box=box.ROUNDED)
    table.add_column("Node", style="cyan bold")
    table.add_column("GPUs", justify="right")
    table.add_column("Models")

    for node in nodes:
        table.add_row(node.node_name, str(node.gpu_count), ", ".join(node.gpu_models) or "-")
    return table


# === COMMANDS ===

def cmd_serve(args, config: MonitorConfig) -> int:
    """Run the API server."""
    from .server import main as serve

    if args.port:
        config.port = args.port
    serve(config)
    return 0


def cmd_gpu(args, config: MonitorConfig) -> int:
    """Show GPU metrics straight from Prometheus."""
    try:
        metrics = asyncio.run(_fetch_gpus(config))
    except PrometheusError as e:
        console.print(f"[red]Failed to retrieve GPU metrics: {e}[/red]")
        return 1

    if not metrics:
        console.print("[yellow]No GPUs reported by Prometheus[/yellow]")
        return 0

    console.print(build_gpu_table(metrics))
    return 0


def cmd_nodes(args, config: MonitorConfig) -> int:
    """List GPU nodes."""
    try:
        nodes = asyncio.run(_fetch_nodes(config))
    except PrometheusError as e:
        console.print(f"[red]Failed to retrieve GPU nodes: {e}[/red]")
        return 1

    console.print(build_node_table(nodes))
    return 0


def cmd_health(args, config: MonitorConfig) -> int:
    """Check Prometheus connectivity."""
    try:
        asyncio.run(_probe(config))
    except PrometheusError as e:
        console.print(Panel.fit(f"[red]● Prometheus unreachable[/red]\n{e}"))
        return 1

    console.print(Panel.fit(f"[green]● Prometheus healthy[/green]\n{config.prometheus_url}"))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gpu-monitoring",
        description="GPU Monitoring API and CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"gpu-monitoring {__version__}")
    parser.add_argument("--prometheus-url", help="Prometheus base URL (overrides PROMETHEUS_URL)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    p_serve = subparsers.add_parser("serve", help="Run the API server")
    p_serve.add_argument("--port", "-p", type=int, help="Listen port (overrides PORT)")
    p_serve.set_defaults(func=cmd_serve)

    p_gpu = subparsers.add_parser("gpu", help="Show per-GPU metrics")
    p_gpu.set_defaults(func=cmd_gpu)

    p_nodes = subparsers.add_parser("nodes", help="List GPU nodes")
    p_nodes.set_defaults(func=cmd_nodes)

    p_health = subparsers.add_parser("health", help="Check Prometheus connectivity")
    p_health.set_defaults(func=cmd_health)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = get_config()
    if args.prometheus_url:
        config.prometheus_url = args.prometheus_url

    if not hasattr(args, "func"):
        parser.print_help()
        return 0
    return args.func(args, config)


if __name__ == "__main__":
    sys.exit(main())
