import hmac
import logging
from typing import Annotated, Optional

from fastapi import Depends, Header

from src.config import Settings, get_settings
from src.constants.stages import ProcessingStage
from src.exceptions import ConfigurationError, UnauthorizedError

logger = logging.getLogger(__name__)

AppSettings = Annotated[Settings, Depends(get_settings)]


def _key_prefix(key: str) -> str:
    return f"{key[:8]}..."


async def verify_api_key(
    settings: AppSettings,
    x_api_key: Annotated[Optional[str], Header(alias="X-API-Key")] = None,
) -> str:
    """Check the shared-secret X-API-Key header.

    Raises:
        ConfigurationError: If the server has no key configured
        UnauthorizedError: If the header is missing or does not match
    """
    if not settings.x_api_key:
        logger.error("[AUTH] X_API_KEY is not configured on the server")
        raise ConfigurationError(
            "Server configuration error",
            stage=ProcessingStage.AUTHENTICATION,
            detail="API key not configured",
        )

    if not x_api_key:
        logger.warning("[AUTH] Request without X-API-Key header")
        raise UnauthorizedError("API key required", detail="Missing X-API-Key header")

    if not hmac.compare_digest(x_api_key.encode(), settings.x_api_key.encode()):
        logger.warning(f"[AUTH] Invalid API key provided: {_key_prefix(x_api_key)}")
        raise UnauthorizedError("Invalid API key", detail="The provided API key is not valid")

    return x_api_key


ApiKey = Annotated[str, Depends(verify_api_key)]
