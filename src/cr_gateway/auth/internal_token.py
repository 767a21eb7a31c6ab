"""FastAPI dependency: require_internal_caller.

The credit engine is only reachable by other backend services. When
INTERNAL_API_TOKEN is set every router requires it in the X-Internal-Token
header; an empty setting turns the check off for local runs and tests.

Usage:
    router = APIRouter(dependencies=[Depends(require_internal_caller)])
"""

import hmac
import logging

from fastapi import Header

from config.settings import settings
from src.cr_common.errors import UnauthorizedError

logger = logging.getLogger(__name__)


async def require_internal_caller(
    x_internal_token: str | None = Header(None, alias="X-Internal-Token"),
) -> None:
    expected = settings.INTERNAL_API_TOKEN
    if not expected:
        return
    if x_internal_token is None or not hmac.compare_digest(
        x_internal_token.encode(), expected.encode()
    ):
        logger.warning("Rejected internal call with missing or invalid token")
        raise UnauthorizedError()
