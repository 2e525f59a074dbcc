import uuid
from contextlib import contextmanager

from django.conf import settings
from django.db import connection, transaction

from common.exceptions import LedgerNotFound, LedgerValidationError


def transaction_timeout_ms(operation):
    timeouts = getattr(settings, "LEDGER_TRANSACTION_TIMEOUTS", {})
    return timeouts.get(operation, timeouts.get("default", 5000))


@contextmanager
def ledger_atomic(operation="default"):
    """Run a ledger operation in one atomic block under its statement timeout.

    The timeout only applies on PostgreSQL, where ``SET LOCAL`` scopes it to the
    enclosing transaction.
    """
    with transaction.atomic():
        if connection.vendor == "postgresql":
            with connection.cursor() as cursor:
                cursor.execute("SET LOCAL statement_timeout = %s", [int(transaction_timeout_ms(operation))])
        yield


def parse_id(entity, value):
    """Coerce a path or body id to a UUID, or fail as not found."""
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise LedgerNotFound(entity, value) from None


def query_id(params, name):
    """Read an optional UUID query parameter; a malformed one is a 400."""
    value = params.get(name)
    if not value:
        return None
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise LedgerValidationError(f"Invalid {name} filter.", errors={name: value}) from None
