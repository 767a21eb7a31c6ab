"""Operation status cache: job progress for polling clients.

Key pattern: credits:op:{op_id}  (Redis hash, TTL OPERATION_STATUS_TTL_SECONDS)

Write path: the generation worker records each state change here.
Read path: the API polls it; a miss means "unknown", never "failed".

Nothing here is authoritative. Balances and holds live in PostgreSQL only, so
an evicted or lost entry never changes what a user is charged.
"""

import logging
from dataclasses import dataclass

import redis.asyncio as aioredis

from config.settings import settings
from src.cr_common.enums import OperationStatus

logger = logging.getLogger(__name__)

KEY_PREFIX = "credits:op:"


def status_key(op_id: str) -> str:
    return f"{KEY_PREFIX}{op_id}"


@dataclass(frozen=True)
class OperationRecord:
    op_id: str
    status: OperationStatus
    hold_id: str
    user_id: str
    detail: str = ""


class OperationStatusCache:
    def __init__(self, redis: aioredis.Redis, ttl_seconds: int | None = None) -> None:
        self._redis = redis
        self._ttl = ttl_seconds or settings.OPERATION_STATUS_TTL_SECONDS

    async def put(
        self,
        op_id: str,
        status: OperationStatus | str,
        hold_id: str,
        user_id: str,
        detail: str = "",
    ) -> OperationRecord:
        record = OperationRecord(
            op_id=op_id,
            status=OperationStatus(status),
            hold_id=hold_id,
            user_id=user_id,
            detail=detail,
        )
        key = status_key(op_id)
        # MULTI/EXEC so the hash never exists without its TTL
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.hset(
                key,
                mapping={
                    "status": record.status.value,
                    "hold_id": hold_id,
                    "user_id": user_id,
                    "detail": detail,
                },
            )
            pipe.expire(key, self._ttl)
            await pipe.execute()
        logger.debug("Operation status: op=%s status=%s", op_id, record.status.value)
        return record

    async def get(self, op_id: str) -> OperationRecord | None:
        raw = await self._redis.hgetall(status_key(op_id))
        if not raw:
            return None
        try:
            status = OperationStatus(raw.get("status", ""))
        except ValueError:
            logger.warning("Discarding malformed operation status: op=%s", op_id)
            return None
        return OperationRecord(
            op_id=op_id,
            status=status,
            hold_id=raw.get("hold_id", ""),
            user_id=raw.get("user_id", ""),
            detail=raw.get("detail", ""),
        )

    async def delete(self, op_id: str) -> None:
        await self._redis.delete(status_key(op_id))
