"""Federation HTTP service package.

See Also:
    [Federation][ringlink.services.federation.service.Federation]: The service class.
    [FederationConfig][ringlink.services.federation.configs.FederationConfig]:
        Service configuration.
"""

from .configs import FederationConfig
from .service import Federation


__all__ = ["Federation", "FederationConfig"]
