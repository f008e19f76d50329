import logging

from prometheus_client import CollectorRegistry, Counter, push_to_gateway

logger = logging.getLogger("run_ci")

push_registry = CollectorRegistry()

api_call_count = Counter(
    "run_ci_api_calls",
    "Total number of GitHub API calls",
    labelnames=["endpoint"],
    registry=push_registry,
)

outcome_counter = Counter(
    "run_ci_outcomes",
    "Number of processed pull requests by outcome",
    labelnames=["action"],
    registry=push_registry,
)

run_error_counter = Counter(
    "run_ci_run_errors",
    "Number of runs aborted by a configuration or listing error",
    labelnames=["context"],
    registry=push_registry,
)


def record_api_call(endpoint: str) -> None:
    api_call_count.labels(endpoint=endpoint).inc()


def push_metrics(gateway: str, job: str = "run-ci") -> None:
    try:
        push_to_gateway(gateway, job=job, registry=push_registry)
    except OSError:
        logger.warning("Pushing metrics to %s failed", gateway, exc_info=True)
