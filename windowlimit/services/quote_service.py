"""Quote lookup used by the demo routes.

Shows a limit declared on a service function rather than on a route: the
decorator counts calls per caller, wherever the function is called from.
"""

from __future__ import annotations

import itertools

from windowlimit.core.rate_limit import rate_limited
from windowlimit.services.policy import RateLimitPolicy

QUOTES = (
    "Simplicity is prerequisite for reliability.",
    "Premature optimization is the root of all evil.",
    "Errors should never pass silently.",
)

quote_policy = RateLimitPolicy(identifier="quote", window_seconds=60, max_count=3)

_quotes = itertools.cycle(QUOTES)


@rate_limited(quote_policy)
async def get_quote() -> str:
    """Return the next quote."""

    return next(_quotes)
