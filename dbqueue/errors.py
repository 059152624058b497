"""
Broker exceptions.

Every failure is surfaced to the immediate caller; nothing in the broker
retries on its own.
"""


class BrokerError(Exception):
    """Base class for all broker failures."""

    kind = "broker"


class BrokerConnectionError(BrokerError):
    """The queue store could not be reached."""

    kind = "connection"


class TransactionError(BrokerError):
    """A produce transaction failed and its whole batch was rolled back."""

    kind = "transaction"


class QueryError(BrokerError):
    """A consume range query failed."""

    kind = "query"


class ScanError(QueryError):
    """A row returned by the store could not be decoded into a record."""

    kind = "scan"


class CheckpointError(Exception):
    """A cursor checkpoint could not be read or parsed."""
