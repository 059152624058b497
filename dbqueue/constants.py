"""
Application constants.
Centralized location for all constant values used across the application.
"""

from datetime import datetime, timezone

# Queue table
QUEUE_TABLE_NAME = "queue"

# Earliest cursor value: everything in the table is after it
EARLIEST_TIMESTAMP = datetime.min.replace(tzinfo=timezone.utc)

# Default values
DEFAULT_BATCH_SIZE = 10
DEFAULT_BATCH_INTERVAL_SECONDS = 1.0
DEFAULT_RECORD_DELAY_SECONDS = 1.0
DEFAULT_POLL_INTERVAL_SECONDS = 5.0

# Metrics names
METRIC_MESSAGES_PRODUCED = "messages_produced_total"
METRIC_MESSAGES_CONSUMED = "messages_consumed_total"
METRIC_EMPTY_POLLS = "empty_polls_total"
METRIC_BROKER_ERRORS = "broker_errors_total"
METRIC_BROKER_LATENCY = "broker_operation_seconds"
METRIC_CURSOR_TIMESTAMP = "consumer_cursor_timestamp"

# Trace span names
SPAN_PRODUCE = "produce"
SPAN_CONSUME = "consume"
SPAN_HANDLE_BATCH = "handle_batch"

# Broker operation labels
OPERATION_PRODUCE = "produce"
OPERATION_CONSUME = "consume"
