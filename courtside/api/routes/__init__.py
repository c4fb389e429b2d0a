"""
API routes - combined router from all domain modules.

Shared infrastructure (limiter) lives here; every sub-router imports what it
needs from this package.
"""

import os

from fastapi import APIRouter
from slowapi import Limiter
from slowapi.util import get_remote_address

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
IS_TEST_ENV = os.getenv("ENV", "").lower() == "test"
if IS_TEST_ENV:
    limiter = Limiter(key_func=get_remote_address)

    def no_op_limit(*args, **kwargs):
        """No-op decorator for test mode - doesn't apply any rate limiting."""
        def decorator(func):
            return func
        return decorator

    limiter.limit = lambda *args, **kwargs: no_op_limit()
else:
    limiter = Limiter(key_func=get_remote_address)

# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from courtside.api.routes.groups import router as groups_router  # noqa: E402
from courtside.api.routes.players import router as players_router  # noqa: E402
from courtside.api.routes.matches import router as matches_router  # noqa: E402
from courtside.api.routes.stats import router as stats_router  # noqa: E402
from courtside.api.routes.venues import router as venues_router  # noqa: E402

router = APIRouter()
router.include_router(groups_router)
router.include_router(players_router)
router.include_router(matches_router)
router.include_router(stats_router)
router.include_router(venues_router)
