"""Exception taxonomy for the scraping engine.

Transport errors are left as httpx.HTTPError and store errors as
sqlalchemy.exc.SQLAlchemyError; only the engine's own failure modes live here.
"""


class MarketIntelError(Exception):
    """Base class for engine errors."""


class UnknownPlatformError(MarketIntelError, ValueError):
    """Raised when a platform id is not in the registry. Never retried."""

    def __init__(self, platform_id: str):
        self.platform_id = platform_id
        super().__init__(f"Unknown platform: {platform_id}")


class SchemaMissingError(MarketIntelError, RuntimeError):
    """Raised when the market intel tables have not been provisioned yet."""

    def __init__(self) -> None:
        super().__init__(
            "Market intel schema not found. Run scripts/init_db.py first."
        )


class NormalizationError(MarketIntelError, ValueError):
    """Raised when a raw listing cannot be mapped to the canonical shape."""


def format_error(exc: BaseException, limit: int = 500) -> str:
    """Render an exception as "[ExcType] message" for result payloads and logs."""
    return f"[{type(exc).__name__}] {str(exc)[:limit]}"
