"""Router configuration.

RouterConfig is a frozen dataclass: immutable after creation, IDE-autocompletable,
no string-key dict lookups.
"""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class RouterConfig:
    """Request routing configuration. Immutable after creation.

    All fields have sensible defaults. Override what you need::

        config = RouterConfig(proxy_external_rewrites=True, fetch_timeout=10.0)
    """

    # Loop guard: maximum phase entries per matcher run
    max_phase_checks: int = 50

    # Status used when a location header is set without a 3xx status
    redirect_status: int = 307

    # Retry a trailing-slash path without the slash in the `rewrite` phase
    rewrite_trailing_slash_retry: bool = True

    # Fetch absolute-URL rewrites instead of redirecting to them
    proxy_external_rewrites: bool = False

    # Outbound fetch (httpx)
    fetch_timeout: float = 30.0

    # Logging (applied by EdgeApp only)
    log_level: str = "info"
