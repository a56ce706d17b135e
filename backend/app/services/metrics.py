import logging

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

logger = logging.getLogger(__name__)

RESPONSE_TIME_BUCKETS = (0.1, 0.5, 1, 2, 5, 10, 30)


def classify_error(error: BaseException) -> str:
    category = getattr(error, "category", None)
    if category:
        return str(category)
    return type(error).__name__


class GenerationMetrics:
    """Prometheus counters for provider calls.

    Every public method is fire-and-forget: a failure inside the metrics
    backend is logged and dropped so it never reaches the retry loop.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()
        self.requests = Counter(
            "llm_requests_total",
            "Total number of text-completion provider requests",
            ["model", "status"],
            registry=self.registry,
        )
        self.response_time = Histogram(
            "llm_response_time_seconds",
            "Provider response time in seconds",
            ["model"],
            buckets=RESPONSE_TIME_BUCKETS,
            registry=self.registry,
        )
        self.errors = Counter(
            "llm_errors_total",
            "Total number of provider errors",
            ["model", "error_type"],
            registry=self.registry,
        )

    def record_attempt(self, model: str, duration_seconds: float, success: bool) -> None:
        try:
            status = "success" if success else "error"
            self.requests.labels(model=model, status=status).inc()
            self.response_time.labels(model=model).observe(max(0.0, float(duration_seconds)))
        except Exception as exc:  # pragma: no cover - metrics backend protection
            logger.debug("Dropping attempt metric for %s: %s", model, exc)

    def record_error(self, model: str, error: BaseException) -> None:
        try:
            self.errors.labels(model=model, error_type=classify_error(error)).inc()
        except Exception as exc:  # pragma: no cover - metrics backend protection
            logger.debug("Dropping error metric for %s: %s", model, exc)

    def export(self) -> bytes:
        return generate_latest(self.registry)
