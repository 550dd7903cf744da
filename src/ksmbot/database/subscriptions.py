"""
Subscription store: per-(user, conversation) watch lists.
"""

import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased, selectinload

from ksmbot.database.async_session import AsyncDatabaseManager
from ksmbot.database.models import (
    SubscriptionDB,
    WatchedTelemetryNodeDB,
    WatchedValidatorDB,
    to_decimal,
)
from ksmbot.gate import SerializationGate, get_gate
from ksmbot.models import (
    AddResult,
    ChannelSubscription,
    Conversation,
    EndUser,
    Identity,
    Nomination,
    RemoveResult,
    Subscription,
    TelemetryNode,
    ValidatorActivity,
    WatchedTelemetryNode,
    WatchedValidator,
)

logger = logging.getLogger(__name__)


class SubscriptionStore:
    """
    CRUD and array operations over subscription records.

    ## Concurrency
    Every add/remove runs inside the `SerializationGate`, so the existence
    check and the write it guards form one critical section process-wide.
    Reads and the poller field updates (`set_nomination`,
    `set_validator_activity`) are single statements and are not gated.

    ## Errors
    Missing records are reported with `None` or `RemoveResult.NOT_FOUND`.
    Storage errors surface as `StorageFailure` from the session.
    """

    def __init__(
        self,
        db_manager: AsyncDatabaseManager,
        gate: Optional[SerializationGate] = None,
    ):
        self.db = db_manager
        self.gate = gate if gate is not None else get_gate()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    async def _find_subscription_id(
        session: AsyncSession, end_user: EndUser, conversation: Conversation
    ) -> Optional[int]:
        return await session.scalar(
            select(SubscriptionDB.id).filter_by(
                end_user_id=end_user.id, conversation_id=conversation.id
            )
        )

    @staticmethod
    async def _get_or_create_subscription_id(
        session: AsyncSession, end_user: EndUser, conversation: Conversation
    ) -> tuple[int, bool]:
        """
        Return the subscription id for the key, creating the record if needed.

        Must run under the gate; the unique key constraint is the backstop.
        """
        subscription_id = await SubscriptionStore._find_subscription_id(
            session, end_user, conversation
        )
        if subscription_id is not None:
            return subscription_id, False

        subscription = SubscriptionDB(
            end_user_id=end_user.id,
            conversation_id=conversation.id,
            end_user=end_user.model_dump(mode="json"),
            conversation=conversation.model_dump(mode="json"),
        )
        session.add(subscription)
        await session.flush()  # Flush to get the ID
        logger.info(
            f"Created subscription {subscription.id} for user {end_user.id} "
            f"in chat {conversation.id}"
        )
        return subscription.id, True

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    async def get_subscription(
        self, end_user: EndUser, conversation: Conversation
    ) -> Optional[Subscription]:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(SubscriptionDB)
                .filter_by(end_user_id=end_user.id, conversation_id=conversation.id)
                .options(
                    selectinload(SubscriptionDB.watched_validators),
                    selectinload(SubscriptionDB.watched_telemetry_nodes),
                )
            )
            subscription = result.scalar_one_or_none()
            return subscription.to_item() if subscription else None

    async def list_subscriptions(self) -> List[Subscription]:
        """All subscriptions, for pollers refreshing nomination data."""
        async with self.db.get_session() as session:
            result = await session.execute(
                select(SubscriptionDB)
                .order_by(SubscriptionDB.id)
                .options(
                    selectinload(SubscriptionDB.watched_validators),
                    selectinload(SubscriptionDB.watched_telemetry_nodes),
                )
            )
            return [s.to_item() for s in result.scalars().all()]

    # ------------------------------------------------------------------
    # Watched validators
    # ------------------------------------------------------------------

    async def add_watched_validator(
        self,
        end_user: EndUser,
        conversation: Conversation,
        address: str,
        identity: Optional[Identity] = None,
    ) -> AddResult:
        """
        Append a validator to the watch list unless its address is present.

        New entries start with zeroed nomination stats, `active=False` and
        `era=0`. A duplicate is reported as `ALREADY_PRESENT` without writing.
        """
        entry = WatchedValidator(address=address, identity=identity or Identity())

        async with self.gate:
            async with self.db.get_session() as session:
                subscription_id, created = await self._get_or_create_subscription_id(
                    session, end_user, conversation
                )

                if not created:
                    existing = await session.scalar(
                        select(WatchedValidatorDB.id).filter_by(
                            subscription_id=subscription_id, address=entry.address
                        )
                    )
                    if existing is not None:
                        logger.debug(
                            f"Validator {entry.address} already watched by "
                            f"subscription {subscription_id}"
                        )
                        return AddResult.ALREADY_PRESENT

                session.add(
                    WatchedValidatorDB(
                        subscription_id=subscription_id,
                        address=entry.address,
                        nomination_count=0,
                        nomination_amount=Decimal(0),
                        identity_display=entry.identity.display,
                        identity_display_parent=entry.identity.display_parent,
                        active=False,
                        era=0,
                    )
                )

        logger.info(f"Subscription {subscription_id} now watches {entry.address}")
        return AddResult.ADDED

    async def remove_watched_validator(
        self, end_user: EndUser, conversation: Conversation, address: str
    ) -> RemoveResult:
        """
        Strip the entry matching `address`.

        `NOT_FOUND` means no subscription exists for the key. A subscription
        that does not watch the address still reports `REMOVED`.
        """
        async with self.gate:
            async with self.db.get_session() as session:
                subscription_id = await self._find_subscription_id(
                    session, end_user, conversation
                )
                if subscription_id is None:
                    return RemoveResult.NOT_FOUND

                result = await session.execute(
                    delete(WatchedValidatorDB).where(
                        WatchedValidatorDB.subscription_id == subscription_id,
                        WatchedValidatorDB.address == address,
                    )
                )

        logger.info(
            f"Removed {result.rowcount} entries for {address} "
            f"from subscription {subscription_id}"
        )
        return RemoveResult.REMOVED

    async def list_watched_validators(
        self, end_user: EndUser, conversation: Conversation
    ) -> Optional[List[WatchedValidator]]:
        async with self.db.get_session() as session:
            subscription_id = await self._find_subscription_id(
                session, end_user, conversation
            )
            if subscription_id is None:
                return None

            result = await session.execute(
                select(WatchedValidatorDB)
                .filter_by(subscription_id=subscription_id)
                .order_by(WatchedValidatorDB.id)
            )
            return [v.to_item() for v in result.scalars().all()]

    async def get_watched_validator(
        self, end_user: EndUser, conversation: Conversation, address: str
    ) -> Optional[WatchedValidator]:
        validators = await self.list_watched_validators(end_user, conversation)
        if validators is None:
            return None

        for validator in validators:
            if validator.address == address:
                return validator
        return None

    async def set_nomination(
        self, subscription_id: int, address: str, count: int, amount: Decimal
    ) -> bool:
        """
        Overwrite the nomination stats of one watched entry.

        Returns False, without raising, when no entry matches. Negative stats
        raise `ValidationError` before anything is written.
        """
        nomination = Nomination(count=count, amount=to_decimal(amount))

        async with self.db.get_session() as session:
            result = await session.execute(
                update(WatchedValidatorDB)
                .where(
                    WatchedValidatorDB.subscription_id == subscription_id,
                    WatchedValidatorDB.address == address,
                )
                .values(
                    nomination_count=nomination.count,
                    nomination_amount=nomination.amount,
                )
            )
            return result.rowcount > 0

    async def set_validator_activity(
        self, address: str, era: int, active: bool, entry_id: Optional[int] = None
    ) -> bool:
        """
        Record whether a watched validator is active in `era`.

        ## Matching
        With `entry_id`, only that watched entry is updated. Without it the
        update hits the first entry watching `address` in insertion order,
        whichever subscription owns it. Other subscriptions watching the same
        address keep their old values; a warning is logged when that happens.

        A negative `era` raises `ValidationError` before anything is written.
        """
        activity = ValidatorActivity(era=era, active=active)

        async with self.db.get_session() as session:
            stmt = update(WatchedValidatorDB).where(
                WatchedValidatorDB.address == address
            )
            if entry_id is not None:
                stmt = stmt.where(WatchedValidatorDB.id == entry_id)
            else:
                watchers = await session.scalar(
                    select(func.count(WatchedValidatorDB.id)).filter_by(
                        address=address
                    )
                )
                if watchers and watchers > 1:
                    logger.warning(
                        f"Activity update for {address} matched by address only; "
                        f"{watchers - 1} other watchers are not updated"
                    )

                # Aliased so the subquery is not correlated to the UPDATE target
                earlier = aliased(WatchedValidatorDB)
                first_id = (
                    select(func.min(earlier.id))
                    .where(earlier.address == address)
                    .scalar_subquery()
                )
                stmt = stmt.where(WatchedValidatorDB.id == first_id)

            result = await session.execute(
                stmt.values(active=activity.active, era=activity.era)
            )
            return result.rowcount > 0

    # ------------------------------------------------------------------
    # Watched telemetry nodes
    # ------------------------------------------------------------------

    async def add_watched_telemetry_node(
        self,
        end_user: EndUser,
        conversation: Conversation,
        channel: str,
        node: TelemetryNode,
    ) -> AddResult:
        """Append a node unless one with the same numeric `node_id` is watched."""
        async with self.gate:
            async with self.db.get_session() as session:
                subscription_id, created = await self._get_or_create_subscription_id(
                    session, end_user, conversation
                )

                if not created:
                    existing = await session.scalar(
                        select(WatchedTelemetryNodeDB.id).filter_by(
                            subscription_id=subscription_id, node_id=node.node_id
                        )
                    )
                    if existing is not None:
                        logger.debug(
                            f"Node {node.node_id} already watched by "
                            f"subscription {subscription_id}"
                        )
                        return AddResult.ALREADY_PRESENT

                session.add(
                    WatchedTelemetryNodeDB(
                        subscription_id=subscription_id,
                        channel=channel,
                        node_id=node.node_id,
                        name=node.name,
                        runtime=node.runtime,
                        address=node.address,
                        is_stale=node.is_stale,
                    )
                )

        logger.info(
            f"Subscription {subscription_id} now watches node "
            f"{node.name} ({node.node_id}) on {channel}"
        )
        return AddResult.ADDED

    async def remove_watched_telemetry_node(
        self, end_user: EndUser, conversation: Conversation, name: str
    ) -> RemoveResult:
        """Strip every watched node whose display `name` matches."""
        async with self.gate:
            async with self.db.get_session() as session:
                subscription_id = await self._find_subscription_id(
                    session, end_user, conversation
                )
                if subscription_id is None:
                    return RemoveResult.NOT_FOUND

                result = await session.execute(
                    delete(WatchedTelemetryNodeDB).where(
                        WatchedTelemetryNodeDB.subscription_id == subscription_id,
                        WatchedTelemetryNodeDB.name == name,
                    )
                )

        logger.info(
            f"Removed {result.rowcount} nodes named {name} "
            f"from subscription {subscription_id}"
        )
        return RemoveResult.REMOVED

    async def list_watched_telemetry_nodes(
        self, end_user: EndUser, conversation: Conversation
    ) -> Optional[List[WatchedTelemetryNode]]:
        async with self.db.get_session() as session:
            subscription_id = await self._find_subscription_id(
                session, end_user, conversation
            )
            if subscription_id is None:
                return None

            result = await session.execute(
                select(WatchedTelemetryNodeDB)
                .filter_by(subscription_id=subscription_id)
                .order_by(WatchedTelemetryNodeDB.id)
            )
            return [n.to_item() for n in result.scalars().all()]

    async def list_subscriptions_watching_channel(
        self, channel: str
    ) -> List[ChannelSubscription]:
        """
        Conversations with at least one node on `channel`.

        Each item carries the subscription's complete node list, not only the
        nodes on `channel`.
        """
        async with self.db.get_session() as session:
            watching = (
                select(WatchedTelemetryNodeDB.subscription_id)
                .filter_by(channel=channel)
                .distinct()
            )
            result = await session.execute(
                select(SubscriptionDB)
                .where(SubscriptionDB.id.in_(watching))
                .order_by(SubscriptionDB.id)
                .options(selectinload(SubscriptionDB.watched_telemetry_nodes))
            )
            return [s.to_channel_item() for s in result.scalars().all()]
