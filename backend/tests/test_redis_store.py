"""Tests for the Redis-backed impersonation store and identity overlay."""
import json
import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from careadmin.auth.roles import Role
from careadmin.domain.identity import Principal
from careadmin.domain.ports.impersonation import CorruptImpersonationRecord, ImpersonationRecord
from careadmin.infrastructure.impersonation_store import (
    RedisIdentityOverlay,
    RedisImpersonationStore,
)
from careadmin.infrastructure.redis import RedisClient


@pytest.fixture
def client():
    mock = MagicMock(spec=RedisClient)
    mock.set_if_absent = AsyncMock(return_value=True)
    mock.get_value = AsyncMock(return_value=None)
    mock.pop_value = AsyncMock(return_value=None)
    mock.set_value = AsyncMock()
    mock.delete_value = AsyncMock()
    return mock


@pytest.fixture
def record():
    return ImpersonationRecord(
        actor_id=uuid.uuid4(),
        target_id=uuid.uuid4(),
        started_at=datetime(2026, 5, 1, 9, 30, tzinfo=timezone.utc),
    )


class TestRedisImpersonationStore:
    @pytest.mark.anyio
    async def test_create_uses_set_nx_with_ttl(self, client, record):
        store = RedisImpersonationStore(client)

        created = await store.create_if_absent("sess-1", record, 900)

        assert created is True
        key, payload, ttl = client.set_if_absent.call_args.args
        assert key == "impersonation:session:sess-1"
        assert ttl == 900
        assert json.loads(payload)["target_id"] == str(record.target_id)

    @pytest.mark.anyio
    async def test_create_reports_existing_session(self, client, record):
        client.set_if_absent.return_value = False
        assert await RedisImpersonationStore(client).create_if_absent("sess-1", record, 900) is False

    @pytest.mark.anyio
    async def test_get_decodes_record(self, client, record):
        client.get_value.return_value = json.dumps({
            "actor_id": str(record.actor_id),
            "target_id": str(record.target_id),
            "started_at": record.started_at.isoformat(),
        })

        assert await RedisImpersonationStore(client).get("sess-1") == record

    @pytest.mark.anyio
    async def test_malformed_record_reads_as_absent(self, client):
        client.get_value.return_value = '{"actor_id": "nope"}'
        assert await RedisImpersonationStore(client).get("sess-1") is None

    @pytest.mark.anyio
    async def test_delete_is_atomic_pop(self, client):
        assert await RedisImpersonationStore(client).delete("sess-1") is None
        client.pop_value.assert_awaited_once_with("impersonation:session:sess-1")

    @pytest.mark.anyio
    async def test_delete_of_malformed_record_is_reported(self, client):
        """The key is gone after GETDEL, so the caller must learn it existed."""
        client.pop_value.return_value = "not json"
        with pytest.raises(CorruptImpersonationRecord):
            await RedisImpersonationStore(client).delete("sess-1")


class TestRedisIdentityOverlay:
    @pytest.mark.anyio
    async def test_set_publishes_identity_with_ttl(self, client):
        overlay = RedisIdentityOverlay(client, ttl_seconds=600)
        identity = Principal(
            id=uuid.uuid4(), role=Role.FRONT_DESK, email="a@example.com", organization_id=uuid.uuid4()
        )

        await overlay.set_overlay("sess-1", identity)

        key, payload, ttl = client.set_value.call_args.args
        assert key == "impersonation:overlay:sess-1"
        assert ttl == 600
        assert json.loads(payload) == {
            "id": str(identity.id),
            "role": "front_desk",
            "email": "a@example.com",
            "organization_id": str(identity.organization_id),
        }

    @pytest.mark.anyio
    async def test_clear_removes_key(self, client):
        await RedisIdentityOverlay(client, ttl_seconds=600).clear_overlay("sess-1")
        client.delete_value.assert_awaited_once_with("impersonation:overlay:sess-1")
