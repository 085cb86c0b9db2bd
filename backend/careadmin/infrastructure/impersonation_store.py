import json
import logging
import uuid
from datetime import datetime

from ..domain.identity import Principal
from ..domain.ports.impersonation import CorruptImpersonationRecord, ImpersonationRecord
from .redis import RedisClient

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "impersonation:session"
OVERLAY_KEY_PREFIX = "impersonation:overlay"


def _session_key(session_id: str) -> str:
    return f"{SESSION_KEY_PREFIX}:{session_id}"


def _encode_record(record: ImpersonationRecord) -> str:
    return json.dumps({
        "actor_id": str(record.actor_id),
        "target_id": str(record.target_id),
        "started_at": record.started_at.isoformat(),
    })


def _decode_record(raw: str) -> ImpersonationRecord:
    try:
        data = json.loads(raw)
        return ImpersonationRecord(
            actor_id=uuid.UUID(data["actor_id"]),
            target_id=uuid.UUID(data["target_id"]),
            started_at=datetime.fromisoformat(data["started_at"]),
        )
    except (ValueError, KeyError, TypeError) as exc:
        raise CorruptImpersonationRecord(str(exc)) from exc


class RedisImpersonationStore:
    """Impersonation records keyed by the actor's real session id."""

    def __init__(self, redis: RedisClient) -> None:
        self._redis = redis

    async def create_if_absent(
        self, session_id: str, record: ImpersonationRecord, ttl_seconds: int
    ) -> bool:
        return await self._redis.set_if_absent(
            _session_key(session_id), _encode_record(record), ttl_seconds
        )

    async def get(self, session_id: str) -> ImpersonationRecord | None:
        raw = await self._redis.get_value(_session_key(session_id))
        if raw is None:
            return None
        try:
            return _decode_record(raw)
        except CorruptImpersonationRecord as exc:
            logger.error("Ignoring malformed impersonation record session_id=%s: %s", session_id, exc)
            return None

    async def delete(self, session_id: str) -> ImpersonationRecord | None:
        raw = await self._redis.pop_value(_session_key(session_id))
        if raw is None:
            return None
        # GETDEL has already removed the key at this point
        return _decode_record(raw)


class RedisIdentityOverlay:
    """Publishes the overlaid identity for a session to the transport."""

    def __init__(self, redis: RedisClient, ttl_seconds: int) -> None:
        self._redis = redis
        self._ttl_seconds = ttl_seconds

    async def set_overlay(self, session_id: str, identity: Principal) -> None:
        payload = json.dumps({
            "id": str(identity.id),
            "role": identity.role.value,
            "email": identity.email,
            "organization_id": str(identity.organization_id) if identity.organization_id else None,
        })
        await self._redis.set_value(
            f"{OVERLAY_KEY_PREFIX}:{session_id}", payload, self._ttl_seconds
        )

    async def clear_overlay(self, session_id: str) -> None:
        await self._redis.delete_value(f"{OVERLAY_KEY_PREFIX}:{session_id}")
