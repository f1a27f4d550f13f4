from prometheus_client import Counter, Gauge


# === Global Metrics ===

api_exception_counter = Counter(
    "api_exception_count", "Total API exceptions by type",
    ["type"]
)

booking_counter = Counter(
    "interview_bookings_total", "Interview booking attempts by outcome",
    ["outcome"]
)

transition_counter = Counter(
    "interview_transitions_total", "Interview lifecycle transitions applied",
    ["transition"]
)

breaker_state_gauge = Gauge(
    "circuit_breaker_state", "Circuit breaker state (0=closed, 1=half_open, 2=open)",
    ["breaker"]
)

cache_event_counter = Counter(
    "read_cache_events_total", "Read-path cache events",
    ["event"]
)

notification_counter = Counter(
    "notification_dispatch_total", "Notification dispatch results",
    ["outcome"]
)
