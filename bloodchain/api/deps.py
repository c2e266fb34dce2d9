from functools import lru_cache

from bloodchain.services.coordinator import BloodBankCoordinator, build_coordinator


@lru_cache(maxsize=None)
def get_coordinator() -> BloodBankCoordinator:
    """Process-wide coordinator; tests override this dependency."""
    return build_coordinator()
