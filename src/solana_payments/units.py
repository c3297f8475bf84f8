"""
Conversion between whole SOL and lamports, the ledger's minimal unit.
"""

from decimal import Decimal, InvalidOperation

from .errors import InvalidArgument

LAMPORTS_PER_SOL = 1_000_000_000


def sol_to_lamports(amount_sol: Decimal | str | int | float) -> int:
    """
    Convert a SOL amount to an integral lamport quantity.

    Floats are routed through ``str`` so that ``0.1`` means 100_000_000
    lamports and not the binary approximation.

    Raises:
        InvalidArgument: If the amount is not a number or carries
            sub-lamport precision
    """
    try:
        sol = Decimal(str(amount_sol))
    except InvalidOperation as e:
        raise InvalidArgument(f"Invalid SOL amount: {amount_sol!r}") from e

    if not sol.is_finite():
        raise InvalidArgument(f"Invalid SOL amount: {amount_sol!r}")

    lamports = sol * LAMPORTS_PER_SOL
    if lamports != lamports.to_integral_value():
        raise InvalidArgument(
            f"SOL amount {amount_sol!r} is more precise than one lamport"
        )
    return int(lamports)


def lamports_to_sol(lamports: int) -> Decimal:
    """Convert lamports to an exact Decimal SOL amount."""
    return Decimal(lamports) / LAMPORTS_PER_SOL
