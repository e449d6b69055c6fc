"""COGS fallback policy.

Decides what COGS to use for an order whose product cost is unknown. The
calculator always takes ``cogs_cents`` as given; callers resolve unknown
values here first.

NO DATA ACCESS - pure functions only.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from plconfig.domain.finance.types import COGSSettings


def resolve_cogs_cents(
    known_cogs_cents: int | None, order_total: float, settings: COGSSettings
) -> int | None:
    """Resolve COGS for an order.

    Args:
        known_cogs_cents: COGS from product data, None when unknown
        order_total: Order total in dollars (used by percentage_of_price)
        settings: Tenant COGS settings

    Returns:
        COGS in cents, or None when the policy is ``skip_pnl`` (the order
        should be left out of P&L figures). Known values are returned
        unchanged, including 0.

    """
    if known_cogs_cents is not None:
        return known_cogs_cents

    behavior = settings.fallback_behavior
    if behavior == "skip_pnl":
        return None
    if behavior == "use_default":
        return settings.fallback_default_cogs_cents or 0
    if behavior == "percentage_of_price":
        percent = Decimal(str(settings.fallback_percent or 0))
        cents = Decimal(str(order_total)) * percent  # dollars * percent / 100 * 100
        return int(cents.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return 0


__all__ = ["resolve_cogs_cents"]
