"""Prometheus metrics for the generation pipeline."""

from typing import Tuple

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Generation Pipeline Metrics
GENERATION_TIME = Histogram(
    "meme_generation_seconds",
    "Time spent handling generation requests",
    ["status"],
    buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 20.0, 30.0]
)

GENERATION_TOTAL = Counter(
    "meme_generation_total",
    "Total number of meme generation attempts",
    ["status"]
)

CAPTION_ATTEMPTS = Counter(
    "caption_generation_attempts_total",
    "Caption generation attempts by prompt template and outcome",
    ["template", "outcome"]
)

# Safety and capacity
MODERATION_CHECKS = Counter(
    "moderation_checks_total",
    "Moderation verdicts by source and result",
    ["source", "result"]
)

RATE_LIMIT_REJECTIONS = Counter(
    "rate_limit_rejections_total",
    "Requests rejected by the rate limiter"
)


def record_generation(status: str, duration_seconds: float) -> None:
    """Record the outcome and duration of one generation request."""
    GENERATION_TOTAL.labels(status=status).inc()
    GENERATION_TIME.labels(status=status).observe(duration_seconds)


def record_caption_attempt(template: str, outcome: str) -> None:
    CAPTION_ATTEMPTS.labels(template=template, outcome=outcome).inc()


def record_moderation(source: str, safe: bool) -> None:
    MODERATION_CHECKS.labels(source=source, result="safe" if safe else "flagged").inc()


def record_rate_limit_rejection() -> None:
    RATE_LIMIT_REJECTIONS.inc()


def render_metrics(registry: CollectorRegistry = REGISTRY) -> Tuple[bytes, str]:
    """Serialize metrics in the Prometheus text format.

    Returns:
        Payload and its content type
    """
    return generate_latest(registry), CONTENT_TYPE_LATEST
