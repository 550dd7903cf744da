"""
Validator registry: global chain snapshots keyed by stash account.
"""

import logging
from typing import Iterable, List

from sqlalchemy import select

from ksmbot.config import IDENTITY_SEPARATOR
from ksmbot.database.async_session import AsyncDatabaseManager
from ksmbot.database.models import ValidatorSnapshotDB
from ksmbot.errors import AmbiguousIdentity, IdentityNotFound
from ksmbot.models import ValidatorSnapshot

logger = logging.getLogger(__name__)


class ValidatorRegistry:
    """Upserts and identity lookups over validator snapshots."""

    def __init__(self, db_manager: AsyncDatabaseManager):
        self.db = db_manager

    async def bulk_upsert(self, snapshots: Iterable[ValidatorSnapshot]) -> int:
        """
        Create or overwrite one snapshot per stash account.

        Each snapshot commits in its own transaction. The first storage
        failure stops the loop and propagates: earlier snapshots stay
        committed, later ones are not attempted.

        Args:
            snapshots: Snapshots from the chain crawler

        Returns:
            Number of snapshots written
        """
        upserted = 0
        for snapshot in snapshots:
            await self._upsert_one(snapshot)
            upserted += 1

        logger.info(f"Upserted {upserted} validator snapshots")
        return upserted

    async def _upsert_one(self, snapshot: ValidatorSnapshot) -> None:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(ValidatorSnapshotDB).filter_by(stash_id=snapshot.stash_id)
            )
            existing = result.scalar_one_or_none()

            if existing:
                existing.apply(snapshot)
                logger.debug(f"Updated validator snapshot: {snapshot.stash_id}")
            else:
                record = ValidatorSnapshotDB(stash_id=snapshot.stash_id)
                record.apply(snapshot)
                session.add(record)
                logger.debug(f"Created validator snapshot: {snapshot.stash_id}")

    async def find_by_stash(self, stash_id: str) -> List[ValidatorSnapshot]:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(ValidatorSnapshotDB).filter_by(stash_id=stash_id)
            )
            return [v.to_item() for v in result.scalars().all()]

    async def find_by_identity_display(self, display: str) -> List[ValidatorSnapshot]:
        """Exact match on the identity display name; may return several."""
        async with self.db.get_session() as session:
            result = await session.execute(
                select(ValidatorSnapshotDB)
                .filter_by(identity_display=display)
                .order_by(ValidatorSnapshotDB.id)
            )
            return [v.to_item() for v in result.scalars().all()]

    async def find_by_identity_display_and_parent(
        self, display_parent: str, display: str
    ) -> List[ValidatorSnapshot]:
        """Exact match on a sub-identity `display_parent/display`."""
        async with self.db.get_session() as session:
            result = await session.execute(
                select(ValidatorSnapshotDB)
                .filter_by(
                    identity_display_parent=display_parent, identity_display=display
                )
                .order_by(ValidatorSnapshotDB.id)
            )
            return [v.to_item() for v in result.scalars().all()]

    async def resolve_identity(self, query: str) -> ValidatorSnapshot:
        """
        Resolve `display` or `parent/display` to exactly one snapshot.

        Raises:
            IdentityNotFound: No snapshot matches
            AmbiguousIdentity: More than one snapshot matches
        """
        parts = query.split(IDENTITY_SEPARATOR)
        if len(parts) == 1:
            matches = await self.find_by_identity_display(parts[0])
        else:
            matches = await self.find_by_identity_display_and_parent(
                parts[0], parts[1]
            )

        if not matches:
            raise IdentityNotFound(query)
        if len(matches) > 1:
            raise AmbiguousIdentity(query, [m.stash_id for m in matches])
        return matches[0]
