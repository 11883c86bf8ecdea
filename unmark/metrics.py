"""
Prometheus metrics for the watermark engine.
Exposes detection, removal and inpainting-session metrics.
"""
import logging

from prometheus_client import Counter, Histogram, Info, start_http_server

logger = logging.getLogger(__name__)

# Info metrics
engine_info = Info('unmark_engine', 'Engine information')

# Detection metrics
detections_total = Counter('unmark_detections_total', 'Watermark detections run', ['size', 'detected'])
detection_confidence = Histogram(
    'unmark_detection_confidence',
    'Detection confidence of the chosen size class',
    buckets=[0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0]
)

# Removal metrics
removals_total = Counter('unmark_removals_total', 'Watermarks removed', ['method'])

# Inpainting metrics
inpaint_loads_total = Counter('unmark_inpaint_loads_total', 'Inpainting session loads', ['status', 'provider'])
inpaint_duration_seconds = Histogram(
    'unmark_inpaint_duration_seconds',
    'Inpainting request duration',
    buckets=[0.5, 1, 2, 5, 10, 30, 60, 120]  # GPU runs land at the low end, CPU in the tens of seconds
)


def start_metrics_server(port: int = 9090, provider: str = "unknown"):
    """Serve metrics over HTTP for Prometheus to scrape."""
    engine_info.info({
        'provider': provider,
        'version': '0.1.0'
    })
    start_http_server(port)
    logger.info(f"Metrics server started on port {port}")


def record_detection(size: int, detected: bool, confidence: float):
    """Record a detection result."""
    detections_total.labels(size=str(size), detected=str(detected).lower()).inc()
    detection_confidence.observe(confidence)


def record_removal(method: str):
    removals_total.labels(method=method).inc()


def record_inpaint_load(status: str, provider: str):
    inpaint_loads_total.labels(status=status, provider=provider or "none").inc()


def record_inpaint_duration(duration: float):
    inpaint_duration_seconds.observe(duration)
