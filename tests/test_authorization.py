"""Tests for AdminDirectory."""

import asyncio

import pytest

from conftest import GROUP_ID
from group_raffle.database.models import AdminRole
from group_raffle.services.authorization import AdminDirectory

OTHER_GROUP_ID = -1009999999999


@pytest.fixture
def admins(session_factory):
    return AdminDirectory(session_factory, owner_ids=[1, 2])


async def test_configured_owners_are_privileged_everywhere(admins):
    await admins.reload()

    assert admins.is_owner(1)
    assert admins.is_privileged(2, GROUP_ID)
    assert not admins.is_privileged(50, GROUP_ID)


async def test_group_admin_is_privileged_only_in_its_group(admins):
    await admins.add_admin(50, GROUP_ID, AdminRole.ADMIN, user_name="Bia")

    assert admins.is_privileged(50, GROUP_ID)
    assert not admins.is_privileged(50, OTHER_GROUP_ID)
    assert not admins.is_owner(50, GROUP_ID)


async def test_global_role_applies_to_every_group(admins):
    await admins.add_admin(60, None, AdminRole.MODERATOR)

    assert admins.is_privileged(60, GROUP_ID)
    assert admins.is_privileged(60, OTHER_GROUP_ID)


async def test_owner_role_in_group(admins):
    await admins.add_admin(70, GROUP_ID, AdminRole.OWNER)

    assert admins.is_owner(70, GROUP_ID)
    assert not admins.is_owner(70, OTHER_GROUP_ID)


async def test_add_admin_twice_updates_role(admins):
    await admins.add_admin(50, GROUP_ID, AdminRole.MODERATOR)
    await admins.add_admin(50, GROUP_ID, AdminRole.OWNER)

    assert len(admins.snapshot.entries) == 1
    assert admins.snapshot.entries[0].role == AdminRole.OWNER


async def test_remove_admin(admins):
    await admins.add_admin(50, GROUP_ID)

    assert await admins.remove_admin(50, GROUP_ID) is True
    assert not admins.is_privileged(50, GROUP_ID)
    assert await admins.remove_admin(50, GROUP_ID) is False


async def test_snapshot_changes_only_on_reload(session_factory, admins):
    other = AdminDirectory(session_factory, owner_ids=[1])
    await other.reload()

    await admins.add_admin(50, GROUP_ID)

    assert not other.is_privileged(50, GROUP_ID)
    await other.reload()
    assert other.is_privileged(50, GROUP_ID)


async def test_global_role_is_stored_once(admins):
    await asyncio.gather(*(admins.add_admin(60, None, AdminRole.MODERATOR) for _ in range(3)))
    await admins.add_admin(60, None, AdminRole.ADMIN)

    global_entries = [e for e in admins.snapshot.entries if e.user_id == 60]
    assert len(global_entries) == 1
    assert global_entries[0].group_id is None
    assert global_entries[0].role == AdminRole.ADMIN


async def test_group_and_global_roles_coexist(admins):
    await admins.add_admin(60, None, AdminRole.MODERATOR, user_name="Caio")
    await admins.add_admin(60, GROUP_ID, AdminRole.OWNER)

    assert len(admins.snapshot.entries) == 2
    assert admins.is_owner(60, GROUP_ID)
    assert not admins.is_owner(60, OTHER_GROUP_ID)
    assert admins.is_privileged(60, OTHER_GROUP_ID)
