from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, generate_latest

REQUESTS_TOTAL = Counter(
    "requests_total",
    "Total HTTP requests",
    ["method", "status"],
)
DEFENSE_REJECTIONS_TOTAL = Counter(
    "defense_rejections_total",
    "Requests rejected by the defense pipeline",
    ["kind"],
)
DEFENSE_BLOCKS_TOTAL = Counter(
    "defense_blocks_total",
    "Identities added to the block registry",
    ["source"],
)
LOGIN_FAILURES_TOTAL = Counter("login_failures_total", "Failed login attempts recorded")
TRACKED_RECORDS = Gauge(
    "defense_tracked_records",
    "Records held by each in-memory defense store after the last sweep",
    ["store"],
)


__all__ = [
    "CONTENT_TYPE_LATEST",
    "REQUESTS_TOTAL",
    "DEFENSE_REJECTIONS_TOTAL",
    "DEFENSE_BLOCKS_TOTAL",
    "LOGIN_FAILURES_TOTAL",
    "TRACKED_RECORDS",
    "generate_latest",
]
