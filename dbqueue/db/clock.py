"""
Server-side clock expressions.

The database server's clock is the only notion of "now" used for visibility
deadlines and for the upper bound of a consume range. Both expressions are
stable within a single statement, so every row of a batch insert carries the
same instant; ties are broken by msg_id in the consume range.

SQLite has no timestamp type. Its clock is rendered as text in the same
layout SQLAlchemy binds datetimes with (six fractional digits), so stored
deadlines compare equal to cursor values read back from them.
"""

from datetime import timedelta

from sqlalchemy import DateTime, literal_column
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql.functions import FunctionElement

SQLITE_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%f"

# strftime stops at milliseconds
SQLITE_MICROSECOND_PAD = "'000'"


class clock_now(FunctionElement):
    """The database server's current timestamp."""

    type = DateTime(timezone=True)
    name = "clock_now"
    inherit_cache = True


class clock_after(FunctionElement):
    """The database server's current timestamp shifted forward by a delay."""

    type = DateTime(timezone=True)
    name = "clock_after"
    inherit_cache = True

    def __init__(self, delay: timedelta):
        if delay < timedelta(0):
            raise ValueError(f"delay must not be negative, got {delay}")
        self.milliseconds = delay // timedelta(milliseconds=1)
        # Carried as a clause so it takes part in the statement cache key
        super().__init__(literal_column(str(self.milliseconds)))


@compiles(clock_now)
def _compile_clock_now(element, compiler, **kw):
    return "statement_timestamp()"


@compiles(clock_now, "sqlite")
def _compile_clock_now_sqlite(element, compiler, **kw):
    return f"(strftime('{SQLITE_TIMESTAMP_FORMAT}', 'now') || {SQLITE_MICROSECOND_PAD})"


@compiles(clock_after)
def _compile_clock_after(element, compiler, **kw):
    return f"statement_timestamp() + interval '{element.milliseconds} milliseconds'"


@compiles(clock_after, "sqlite")
def _compile_clock_after_sqlite(element, compiler, **kw):
    seconds = element.milliseconds / 1000
    return (
        f"(strftime('{SQLITE_TIMESTAMP_FORMAT}', 'now', '+{seconds:.3f} seconds')"
        f" || {SQLITE_MICROSECOND_PAD})"
    )
