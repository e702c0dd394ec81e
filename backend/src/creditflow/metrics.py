"""Business metrics for Prometheus monitoring."""
from prometheus_client import Counter

# Webhook metrics
webhook_events_received_total = Counter(
    "webhook_events_received_total",
    "Total verified provider webhook events received",
    labelnames=["event_type"],
)

webhook_events_duplicate_total = Counter(
    "webhook_events_duplicate_total",
    "Total provider webhook deliveries skipped as duplicates",
    labelnames=["event_type"],
)

webhook_events_failed_total = Counter(
    "webhook_events_failed_total",
    "Total provider webhook events whose handlers raised",
    labelnames=["event_type"],
)

webhook_events_unhandled_total = Counter(
    "webhook_events_unhandled_total",
    "Total provider webhook events acknowledged without a handler",
    labelnames=["event_type"],
)

# Credit metrics
credits_deducted_total = Counter(
    "credits_deducted_total",
    "Total credits reserved for jobs",
)

credits_added_total = Counter(
    "credits_added_total",
    "Total credits granted or refunded",
    labelnames=["reason"],  # reason: top_up, refund, grant
)

credits_insufficient_total = Counter(
    "credits_insufficient_total",
    "Total reservations rejected for insufficient balance",
)

# Job metrics
jobs_submitted_total = Counter(
    "jobs_submitted_total",
    "Total jobs accepted and queued",
)

jobs_finished_total = Counter(
    "jobs_finished_total",
    "Total jobs reaching a terminal state",
    labelnames=["status"],  # status: completed, failed
)

jobs_enqueue_failed_total = Counter(
    "jobs_enqueue_failed_total",
    "Total jobs rolled back because the queue was unavailable",
)

job_rollback_step_failed_total = Counter(
    "job_rollback_step_failed_total",
    "Total rollback steps that failed after an enqueue failure",
    labelnames=["step"],  # step: mark_failed, refund
)
