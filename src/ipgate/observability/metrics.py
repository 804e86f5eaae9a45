from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest

GUARD_DECISIONS = Counter(
    "ipgate_guard_decisions_total",
    "Total IP guard decisions",
    ["allowed", "reason"],  # reason: allowed:user, allowed:default, denied:no-match, ...
)

RULE_FILE_ERRORS = Counter(
    "ipgate_rule_file_errors_total",
    "Rule file reads that fell back to no file rules",
    ["kind"],  # kind: unreadable, decode
)

REJECTED_REQUESTS = Counter(
    "ipgate_rejected_requests_total",
    "Requests answered with 403 by the enforcing guard",
)


def generate_metrics() -> bytes:
    return generate_latest()


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST
