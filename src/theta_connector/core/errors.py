"""Custom exception hierarchy for the connector."""


class ConnectorError(Exception):
    """Base exception for all connector errors."""


# --- Configuration ---
class ConfigError(ConnectorError):
    """Invalid or missing configuration."""


# --- Connection ---
class NotConnectedError(ConnectorError):
    """Operation attempted before the chain client was connected."""

    def __init__(self, message: str = "not connected to theta network") -> None:
        super().__init__(message)


# --- Ledger ---
class LedgerError(ConnectorError):
    """Chain communication error."""


class SubmissionError(LedgerError):
    """Transaction could not be sent or was rejected on submission."""


class ConfirmationError(LedgerError):
    """Transaction was not confirmed (timeout or on-chain revert)."""

    def __init__(self, message: str, tx_hash: str = "") -> None:
        self.tx_hash = tx_hash
        super().__init__(message)


# --- Correlation ---
class CorrelationError(ConnectorError):
    """Event correlation failure."""


class CallInFlightError(CorrelationError):
    """A call for the same (event kind, key) is already awaiting its event."""

    def __init__(self, kind: str, key: str) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f"Call already in flight for {kind}[{key}]")


class EventTimeoutError(CorrelationError):
    """The confirming event did not arrive within the configured timeout."""

    def __init__(self, kind: str, key: str, timeout: float) -> None:
        self.kind = kind
        self.key = key
        self.timeout = timeout
        super().__init__(
            f"No {kind} event for key {key!r} within {timeout:.1f}s"
        )


class MalformedEventError(CorrelationError):
    """A chain event is missing the fields its kind requires."""
