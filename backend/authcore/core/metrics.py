"""Prometheus metrics shared by the API and the session services"""

from prometheus_client import Counter, Gauge, Histogram

REQUEST_COUNT = Counter(
    "authcore_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "authcore_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)
LOGIN_ATTEMPTS = Counter(
    "authcore_login_attempts_total",
    "Login attempts by outcome",
    ["outcome"],
)
REFRESH_OUTCOMES = Counter(
    "authcore_refresh_outcomes_total",
    "Refresh-token exchanges by outcome",
    ["outcome"],
)
REPLAY_DETECTIONS = Counter(
    "authcore_refresh_replay_detections_total",
    "Revoked refresh tokens presented again",
)
SESSIONS_REVOKED = Counter(
    "authcore_sessions_revoked_total",
    "Refresh tokens revoked by mass revocation",
    ["reason"],
)
TOKENS_SWEPT = Counter(
    "authcore_refresh_tokens_swept_total",
    "Expired refresh tokens deleted by the cleanup sweep",
)
ROLE_CHANGES = Counter(
    "authcore_role_changes_total",
    "Role grants and revocations",
    ["action", "role"],
)
CLEANUP_WORKER_UP = Gauge("authcore_token_cleanup_worker_up", "Cleanup worker liveness (1 running, 0 stopped)")
