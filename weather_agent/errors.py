"""
Error types shared by the trading cycle and its adapters.

Exchange failures are split by how the cycle reacts to them:
- NetworkError: timeouts, connection errors, 5xx. Recoverable next cycle.
- AuthError: signing or credential failure. Operator must act.
- RejectedError: the exchange refused an order. No ledger write.
- NotFoundError: the requested resource does not exist.
"""


class TraderError(Exception):
    """Base class for all agent errors."""

    kind = "error"


class ExchangeError(TraderError):
    """Any failure talking to the exchange."""

    kind = "exchange"


class NetworkError(ExchangeError):
    kind = "network"


class AuthError(ExchangeError):
    kind = "auth"


class RejectedError(ExchangeError):
    kind = "rejected"


class NotFoundError(ExchangeError):
    kind = "not_found"


class DataUnavailableError(TraderError):
    """A data source returned nothing usable."""

    kind = "data_unavailable"


class InvalidInputError(TraderError):
    """Unparsable market identifiers or out-of-range decision values."""

    kind = "invalid_input"


class LedgerError(TraderError):
    """The ledger could not be read or durably written."""

    kind = "ledger"


class StartupError(TraderError):
    """Preconditions for running a cycle are not met."""

    kind = "startup"


class UnrecordedOrderError(LedgerError):
    """The exchange accepted an order but the ledger write failed."""

    kind = "unrecorded_order"

    def __init__(self, message: str, order_id: str):
        super().__init__(message)
        self.order_id = order_id
