from fastapi import APIRouter
from fastapi.responses import PlainTextResponse
from typing import Dict, Any
from datetime import datetime
import time
import threading
from collections import defaultdict
from collector.services.broadcaster import broadcaster
from collector.services.balance import balance_service

router = APIRouter()


class MetricsCollector:
    """Thread-safe counters for ingestion and error outcomes."""

    def __init__(self):
        self._lock = threading.Lock()
        self._events = defaultdict(int)  # event type -> ingested count
        self._errors = defaultdict(int)  # error class -> count
        self._start_time = time.time()

    def record_event(self, event_type: str):
        """Record one successfully ingested event."""
        with self._lock:
            self._events[event_type] += 1

    def record_error(self, error_type: str):
        """Record one request that failed with a collector error."""
        with self._lock:
            self._errors[error_type] += 1

    def get_metrics(self) -> Dict[str, Any]:
        """Get current metrics snapshot."""
        with self._lock:
            uptime_seconds = time.time() - self._start_time
            events = dict(self._events)
            errors = dict(self._errors)

        return {
            "timestamp": datetime.now().isoformat(),
            "uptime_seconds": uptime_seconds,
            "events_ingested": events,
            "errors": errors,
            "fanout": broadcaster.get_stats(),
            "balance": balance_service.get_stats()
        }

    def reset(self):
        with self._lock:
            self._events.clear()
            self._errors.clear()
            self._start_time = time.time()


# Global metrics collector instance
metrics_collector = MetricsCollector()


@router.get("/metrics")
async def get_metrics():
    """
    Get collector metrics in JSON format.
    Includes ingestion counts, error counts, fan-out and balance poller stats.
    """
    return metrics_collector.get_metrics()


@router.get("/metrics/prometheus", response_class=PlainTextResponse)
async def get_prometheus_metrics():
    """
    Get metrics in Prometheus format.
    """
    metrics = metrics_collector.get_metrics()
    fanout = metrics["fanout"]
    balance = metrics["balance"]

    prometheus_lines = [
        "# HELP collector_uptime_seconds Application uptime in seconds",
        "# TYPE collector_uptime_seconds counter",
        f"collector_uptime_seconds {metrics['uptime_seconds']}",
        "",
        "# HELP collector_events_ingested_total Events recorded per type",
        "# TYPE collector_events_ingested_total counter",
    ]

    for event_type, count in sorted(metrics["events_ingested"].items()):
        prometheus_lines.append(f"collector_events_ingested_total{{type=\"{event_type}\"}} {count}")

    prometheus_lines.extend([
        "",
        "# HELP collector_errors_total Requests failed with a collector error",
        "# TYPE collector_errors_total counter",
    ])

    for error_type, count in sorted(metrics["errors"].items()):
        prometheus_lines.append(f"collector_errors_total{{error=\"{error_type}\"}} {count}")

    prometheus_lines.extend([
        "",
        "# HELP collector_subscribers Connected fan-out subscribers",
        "# TYPE collector_subscribers gauge",
        f"collector_subscribers {fanout['subscribers']}",
        "",
        "# HELP collector_envelopes_delivered_total Envelopes sent to subscribers",
        "# TYPE collector_envelopes_delivered_total counter",
        f"collector_envelopes_delivered_total {fanout['delivered']}",
        "",
        "# HELP collector_subscribers_dropped_total Subscribers dropped as slow or broken",
        "# TYPE collector_subscribers_dropped_total counter",
        f"collector_subscribers_dropped_total {fanout['dropped']}",
        "",
        "# HELP collector_balance_fetches_total Balance API fetches by outcome",
        "# TYPE collector_balance_fetches_total counter",
        f"collector_balance_fetches_total{{outcome=\"ok\"}} {balance['fetch_ok']}",
        f"collector_balance_fetches_total{{outcome=\"failed\"}} {balance['fetch_failed']}",
        "",
        "# HELP collector_balance_history_samples Stored balance samples",
        "# TYPE collector_balance_history_samples gauge",
        f"collector_balance_history_samples {balance['history_count']}",
        ""
    ])

    return "\n".join(prometheus_lines)
