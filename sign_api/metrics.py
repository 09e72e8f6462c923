"""Métricas Prometheus del servicio."""

from __future__ import annotations

from prometheus_client import Counter

DOWNLINKS_QUEUED = Counter(
    "sign_downlinks_queued_total",
    "Downlinks sent to the network server queue",
    ["kind", "status"],  # kind: color|command, status: success|upstream_error
)

UPLINKS_DECODED = Counter(
    "sign_uplinks_decoded_total",
    "Uplink telemetry frames received by the webhook",
    ["status"],  # decoded, invalid, empty
)

RATE_LIMIT_REJECTIONS = Counter(
    "sign_rate_limit_rejections_total",
    "Requests rejected by the rate limiter",
    ["scope"],
)
