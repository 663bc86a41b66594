"""
Route limits share the application's Redis-backed limiter.
"""
from smartbudget import main
from smartbudget.core.rate_limit import limiter
from smartbudget.routers import budget, patterns


class TestSharedLimiter:
    def test_routers_use_application_limiter(self):
        assert budget.limiter is limiter
        assert patterns.limiter is limiter
        assert main.app.state.limiter is limiter
