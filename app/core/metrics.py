"""Prometheus metric inventory for the quiz service.

Every metric the service exports is declared here; the modules that own
the behaviour import the metric and increment it at the point of action.
Counters only go up (use rate() in PromQL), the gauge tracks in-flight
requests, and the histogram feeds latency percentiles.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, route, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Attempt lifecycle
# ---------------------------------------------------------------------------

ATTEMPTS_STARTED = Counter(
    "quiz_attempts_started_total",
    "start_attempt outcomes",
    ["result"],  # created|conflict|retake_denied|unavailable|forbidden
)

SUBMISSIONS_GRADED = Counter(
    "quiz_submissions_graded_total",
    "Submissions finalized by submit_attempt",
    ["mode"],  # auto|manual_pending
)

EVALUATIONS = Counter(
    "quiz_evaluations_total",
    "Manual evaluations and revaluation decisions",
    ["kind"],  # manual|revaluation_requested|revaluation_approved|revaluation_denied
)

AI_INSIGHT_FAILURES = Counter(
    "quiz_ai_insight_failures_total",
    "AI insight fetches that failed and were skipped",
    ["reason"],  # timeout|error
)

# ---------------------------------------------------------------------------
# Competitions
# ---------------------------------------------------------------------------

LEADERBOARD_WRITES = Counter(
    "leaderboard_writes_total",
    "record_entry outcomes",
    ["result"],  # inserted|improved|kept|rejected
)

CACHE_OPERATIONS = Counter(
    "cache_operations_total",
    "Cache get operations by result",
    ["operation"],  # "hit" or "miss"
)
