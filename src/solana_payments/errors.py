"""
Exception taxonomy for the payment engine.

InvalidArgument, NotFound and ConflictingState are raised to the immediate
caller. GatewayUnavailable is raised by ledger gateways and absorbed by the
Reconciler, which reports it through its observability hook instead.
"""


class PaymentError(Exception):
    """Base class for every error raised by solana_payments."""


class InvalidArgument(PaymentError, ValueError):
    """Bad input when creating a payment request."""


class NotFound(PaymentError, LookupError):
    """No payment request exists for the given id."""

    def __init__(self, payment_id: str):
        super().__init__(f"Payment not found: {payment_id}")
        self.payment_id = payment_id


class ConflictingState(PaymentError):
    """A transition was requested that the record's current status forbids."""

    def __init__(self, payment_id: str, current: str, requested: str):
        super().__init__(
            f"Cannot move payment {payment_id} from {current} to {requested}"
        )
        self.payment_id = payment_id
        self.current = current
        self.requested = requested


class GatewayUnavailable(PaymentError):
    """The ledger RPC endpoint failed or returned an unusable response."""
