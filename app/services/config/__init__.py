"""Configuration package (Facade).

This package acts as a small *Facade* over the underlying configuration modules.
Callers import every config object from one stable path instead of knowing which
module defines it:

	from app.services.config import IdentityServiceConfig

Benefits:
- Keeps imports consistent and shorter.
- Allows internal module layout changes without touching all call sites.
- Clearly defines the public API of this package (via ``__all__``).
"""

from app.services.config.application_config import ApplicationServiceConfig
from app.services.config.identity_config import IdentityServiceConfig
from app.services.config.setup_config import TenantSetupConfig

__all__ = ["ApplicationServiceConfig", "IdentityServiceConfig", "TenantSetupConfig"]
