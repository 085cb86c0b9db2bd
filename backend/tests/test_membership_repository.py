"""
MembershipRepository failure handling against a real async engine.

The memberships table is created only where a test needs it, so the first
query fails with a genuine driver error.
"""
import uuid

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from careadmin.auth.roles import Role
from careadmin.auth.scope import OrganizationScopeFilter
from careadmin.crud.membership import MembershipRepository
from careadmin.domain.ports.membership import MembershipStoreUnavailable
from careadmin.errors import ScopeUnavailable
from careadmin.models import Membership
from tests.fakes import make_principal


def _engine(tmp_path, *, disconnects: list | None = None):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'scope.db'}")
    if disconnects is not None:

        @event.listens_for(engine.sync_engine, "handle_error")
        def treat_as_disconnect(context):
            disconnects.append(context.original_exception)
            context.is_disconnect = True

    return engine


async def _create_memberships(engine) -> None:
    async with engine.begin() as connection:
        await connection.run_sync(Membership.__table__.create)


@pytest.mark.anyio
async def test_disconnect_is_retried_until_scope_unavailable(tmp_path):
    """Every attempt reaches the database; none dies on a pending rollback."""
    disconnects: list = []
    engine = _engine(tmp_path, disconnects=disconnects)
    try:
        async with async_sessionmaker(engine, expire_on_commit=False)() as session:
            scope = OrganizationScopeFilter(
                MembershipRepository(session), max_attempts=3, backoff_seconds=0
            )

            with pytest.raises(ScopeUnavailable) as exc_info:
                await scope.accessible_organizations(make_principal(Role.FRONT_DESK))

        assert exc_info.value.details == {"lookup": "membership"}
        assert len(disconnects) == 3
    finally:
        await engine.dispose()


@pytest.mark.anyio
async def test_session_is_usable_after_disconnect(tmp_path):
    disconnects: list = []
    engine = _engine(tmp_path, disconnects=disconnects)
    try:
        async with async_sessionmaker(engine, expire_on_commit=False)() as session:
            repository = MembershipRepository(session)
            with pytest.raises(MembershipStoreUnavailable):
                await repository.lookup_membership(uuid.uuid4())

            await _create_memberships(engine)

            assert await repository.lookup_membership(uuid.uuid4()) is None
        assert len(disconnects) == 1
    finally:
        await engine.dispose()


@pytest.mark.anyio
async def test_session_is_usable_after_statement_error(tmp_path):
    """A failed statement without a disconnect also leaves the session clean."""
    engine = _engine(tmp_path)
    try:
        async with async_sessionmaker(engine, expire_on_commit=False)() as session:
            repository = MembershipRepository(session)
            with pytest.raises(MembershipStoreUnavailable):
                await repository.list_active_organizations()

            await _create_memberships(engine)

            assert await repository.lookup_membership(uuid.uuid4()) is None
    finally:
        await engine.dispose()
