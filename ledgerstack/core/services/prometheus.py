"""Prometheus scrape config for the metrics sidecar."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from ledgerstack.core.models.stack import Stack

SCRAPE_INTERVAL = "5s"


def prometheus_config(stack: Stack) -> dict[str, Any]:
    """Scrape every managed node that exposes metrics."""
    targets = [
        f"firefly_core_{m.id}:{m.ports.metrics}"
        for m in stack.internal_members()
        if m.ports.metrics is not None
    ]
    return {
        "global": {"scrape_interval": SCRAPE_INTERVAL, "scrape_timeout": SCRAPE_INTERVAL},
        "scrape_configs": [
            {
                "job_name": "fireflies",
                "metrics_path": "/metrics",
                "static_configs": [{"targets": targets}],
            },
        ],
    }


def write_prometheus_config(stack: Stack, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(prometheus_config(stack), sort_keys=False), encoding="utf-8")
    return path
