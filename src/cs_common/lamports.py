"""Lamport/SOL/USD conversion utilities.

Ledger balances are int lamports (1 SOL = 1_000_000_000 lamports). USD values
are Decimal and only ever rounded at the edge: to whole cents for the ledger
(amount_usd_cents) and to a 2dp string for the provider wire format.
"""

from decimal import ROUND_HALF_UP, Decimal

LAMPORTS_PER_SOL = 1_000_000_000

# Largest value a BIGINT ledger column holds.
MAX_LAMPORTS = 2**63 - 1

_CENT = Decimal("0.01")


def lamports_to_sol(lamports: int) -> Decimal:
    """1_500_000_000 -> Decimal('1.5')."""
    return Decimal(lamports) / LAMPORTS_PER_SOL


def sol_to_lamports(sol: Decimal) -> int:
    """Round to the nearest lamport (half-up)."""
    return int((sol * LAMPORTS_PER_SOL).to_integral_value(rounding=ROUND_HALF_UP))


def lamports_to_usd(lamports: int, rate: float) -> Decimal:
    """Unrounded USD value of a lamport amount at `rate` USD per SOL."""
    return lamports_to_sol(lamports) * Decimal(str(rate))


def usd_to_lamports(usd: Decimal, rate: float) -> int:
    if rate <= 0:
        raise ValueError(f"Rate must be positive, got {rate}")
    return sol_to_lamports(usd / Decimal(str(rate)))


def usd_to_cents(usd: Decimal) -> int:
    """Decimal('12.345') -> 1235."""
    return int((usd * 100).to_integral_value(rounding=ROUND_HALF_UP))


def format_usd(usd: Decimal) -> str:
    """Provider wire format: always two decimals, no thousands separator."""
    return str(usd.quantize(_CENT, rounding=ROUND_HALF_UP))


def lamports_to_usd_display(lamports: int, rate: float) -> str:
    """Convert lamports straight to the provider's 2dp USD string."""
    return format_usd(lamports_to_usd(lamports, rate))
