"""
Admin directory

Answers "is this caller privileged in this group" from an immutable
snapshot of configured owners and the group_admins table. The snapshot
is swapped only by ``reload``.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, List, Optional, Tuple

from loguru import logger
from sqlalchemy.ext.asyncio import async_sessionmaker

from group_raffle.database import crud
from group_raffle.database.models import AdminRole
from group_raffle.database.session import session_scope


@dataclass(frozen=True)
class AdminEntry:
    user_id: int
    group_id: Optional[int]
    role: AdminRole
    user_name: Optional[str] = None


@dataclass(frozen=True)
class AdminSnapshot:
    owner_ids: FrozenSet[int] = frozenset()
    entries: Tuple[AdminEntry, ...] = ()
    _index: FrozenSet[Tuple[int, Optional[int], AdminRole]] = field(default=frozenset(), repr=False)

    @classmethod
    def build(cls, owner_ids: Iterable[int], entries: Iterable[AdminEntry]) -> "AdminSnapshot":
        entries = tuple(entries)
        return cls(
            owner_ids=frozenset(owner_ids),
            entries=entries,
            _index=frozenset((e.user_id, e.group_id, e.role) for e in entries),
        )

    def roles_for(self, user_id: int, group_id: Optional[int]) -> List[AdminRole]:
        """Roles granted in the group, including roles granted in every group"""
        return [
            role for uid, gid, role in self._index
            if uid == user_id and (gid is None or gid == group_id)
        ]


class AdminDirectory:
    """Privileged user lookup backed by settings and the database"""

    def __init__(self, session_factory: async_sessionmaker, owner_ids: Iterable[int]):
        self.session_factory = session_factory
        self.owner_ids = frozenset(owner_ids)
        self._snapshot = AdminSnapshot.build(self.owner_ids, ())

    @property
    def snapshot(self) -> AdminSnapshot:
        return self._snapshot

    async def reload(self) -> AdminSnapshot:
        """Load admin entries from the database into a new snapshot"""
        async with session_scope(self.session_factory) as session:
            rows = await crud.get_group_admins(session)
            entries = [
                AdminEntry(user_id=r.user_id, group_id=r.group_id, role=r.role, user_name=r.user_name)
                for r in rows
            ]

        self._snapshot = AdminSnapshot.build(self.owner_ids, entries)
        logger.info(f"Admin directory loaded: {len(entries)} entries, {len(self.owner_ids)} owners")
        return self._snapshot

    def is_owner(self, user_id: int, group_id: Optional[int] = None) -> bool:
        """Configured owner, or owner role in the group"""
        if user_id in self._snapshot.owner_ids:
            return True
        return AdminRole.OWNER in self._snapshot.roles_for(user_id, group_id)

    def is_privileged(self, user_id: int, group_id: Optional[int] = None) -> bool:
        """
        Check if a user may manage raffles in a group

        Args:
            user_id: Telegram user ID
            group_id: Group chat ID, None checks roles valid in every group

        Returns:
            True for configured owners and users with any role in the group
        """
        if user_id in self._snapshot.owner_ids:
            return True
        return bool(self._snapshot.roles_for(user_id, group_id))

    async def add_admin(
        self,
        user_id: int,
        group_id: Optional[int],
        role: AdminRole = AdminRole.ADMIN,
        user_name: Optional[str] = None,
    ) -> AdminEntry:
        """Grant role and reload the snapshot"""
        async with session_scope(self.session_factory) as session:
            await crud.add_group_admin(session, user_id, group_id, role, user_name)

        await self.reload()
        return AdminEntry(user_id=user_id, group_id=group_id, role=role, user_name=user_name)

    async def remove_admin(self, user_id: int, group_id: Optional[int]) -> bool:
        """Revoke role and reload the snapshot"""
        async with session_scope(self.session_factory) as session:
            removed = await crud.remove_group_admin(session, user_id, group_id)

        if removed:
            await self.reload()
        return removed
