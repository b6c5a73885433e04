"""Health checker service package.

Re-exports all public symbols::

    from ringlink.services.health_checker import HealthChecker, HealthCheckerConfig
"""

from .configs import HealthCheckerConfig
from .service import HealthChecker, HealthCycleCounters


__all__ = ["HealthChecker", "HealthCheckerConfig", "HealthCycleCounters"]
