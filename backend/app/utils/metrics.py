"""Prometheus metrics for ingestion and retrieval."""

from prometheus_client import Counter, Histogram

# Retrieval metrics
retrieval_latency_ms = Histogram(
    "retrieval_latency_ms",
    "Retrieval stage latency in milliseconds",
    ["stage"],
    buckets=[5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000],
)

retrieval_errors_total = Counter(
    "retrieval_errors_total",
    "Total retrieval stage failures",
    ["stage"],
)

retrieval_results = Histogram(
    "retrieval_results",
    "Number of fused results returned per search",
    buckets=[0, 1, 2, 5, 10, 15, 20],
)

# Ingestion metrics
embedding_chunks_total = Counter(
    "embedding_chunks_total",
    "Chunks processed by the embedding indexer",
    ["outcome"],
)

ingestion_runs_total = Counter(
    "ingestion_runs_total",
    "Embedding runs by overall outcome",
    ["outcome"],
)


class RetrievalMetrics:
    """No-op metrics; the default for components constructed without a registry."""

    def record_latency(self, stage: str, latency_ms: float) -> None:
        pass

    def inc_error(self, stage: str) -> None:
        pass

    def observe_results(self, count: int) -> None:
        pass

    def inc_chunk(self, outcome: str) -> None:
        pass

    def inc_ingestion(self, outcome: str) -> None:
        pass


class PrometheusRetrievalMetrics(RetrievalMetrics):
    """Prometheus-based metrics implementation."""

    def record_latency(self, stage: str, latency_ms: float) -> None:
        """Record stage latency."""
        retrieval_latency_ms.labels(stage=stage).observe(latency_ms)

    def inc_error(self, stage: str) -> None:
        """Increment error counter."""
        retrieval_errors_total.labels(stage=stage).inc()

    def observe_results(self, count: int) -> None:
        retrieval_results.observe(count)

    def inc_chunk(self, outcome: str) -> None:
        embedding_chunks_total.labels(outcome=outcome).inc()

    def inc_ingestion(self, outcome: str) -> None:
        ingestion_runs_total.labels(outcome=outcome).inc()
