"""
Check-then-act command sequences behind the bot's watch-list commands.

Each command returns a `CommandResult`; turning it into a chat reply is the
transport layer's job.
"""

import enum
import logging
from typing import Optional

from pydantic import BaseModel

from ksmbot.config import ADDRESS_ALPHABET, ADDRESS_LENGTH
from ksmbot.database import SubscriptionStore, ValidatorRegistry
from ksmbot.errors import AmbiguousIdentity, IdentityNotFound, StorageFailure
from ksmbot.gate import SerializationGate
from ksmbot.models import (
    AddResult,
    Conversation,
    EndUser,
    Identity,
    RemoveResult,
    TelemetryNode,
)

logger = logging.getLogger(__name__)


class CommandStatus(str, enum.Enum):
    ADDED = "added"
    ALREADY_PRESENT = "already_present"
    REMOVED = "removed"
    NO_SUBSCRIPTION = "no_subscription"
    NOT_WATCHED = "not_watched"
    INVALID_ADDRESS = "invalid_address"
    IDENTITY_NOT_FOUND = "identity_not_found"
    IDENTITY_AMBIGUOUS = "identity_ambiguous"
    UNKNOWN_ERROR = "unknown_error"


class CommandResult(BaseModel):
    status: CommandStatus
    address: Optional[str] = None
    identity: Optional[Identity] = None
    node: Optional[TelemetryNode] = None


def looks_like_address(value: str) -> bool:
    """
    Whether `value` has the shape of a Kusama account address.

    Kusama addresses are 47 base58 characters starting with an uppercase
    letter between C and Z. Anything else is treated as an identity.
    """
    return (
        len(value) == ADDRESS_LENGTH
        and "C" <= value[0] <= "Z"
        and all(c in ADDRESS_ALPHABET for c in value)
    )


class WatchlistService:
    """
    Runs the watch-list commands against the stores.

    Every sequence that reads state and then decides what to write holds the
    store's gate for its whole duration.
    """

    def __init__(self, store: SubscriptionStore, registry: ValidatorRegistry):
        self.store = store
        self.registry = registry

    @property
    def gate(self) -> SerializationGate:
        return self.store.gate

    async def add_validator(
        self,
        end_user: EndUser,
        conversation: Conversation,
        query: str,
        identity: Optional[Identity] = None,
    ) -> CommandResult:
        """
        Watch a validator given its address or on-chain identity.

        ## Parameters
        - `query`: An address, a display name, or `parent/display`
        - `identity`: Identity the caller already looked up for an address
          query; ignored when `query` is an identity
        """
        query = query.strip()
        if not query:
            return CommandResult(status=CommandStatus.IDENTITY_NOT_FOUND)

        try:
            async with self.gate:
                if looks_like_address(query):
                    address = query
                    identity = identity or Identity()
                else:
                    snapshot = await self.registry.resolve_identity(query)
                    address = snapshot.stash_id
                    identity = snapshot.identity

                result = await self.store.add_watched_validator(
                    end_user, conversation, address, identity
                )
        except IdentityNotFound:
            return CommandResult(status=CommandStatus.IDENTITY_NOT_FOUND)
        except AmbiguousIdentity as e:
            logger.info(f"{e}: {', '.join(e.stash_ids)}")
            return CommandResult(status=CommandStatus.IDENTITY_AMBIGUOUS)
        except StorageFailure as e:
            logger.error(f"Failed to add validator '{query}': {e}", exc_info=True)
            return CommandResult(status=CommandStatus.UNKNOWN_ERROR)

        status = (
            CommandStatus.ADDED
            if result is AddResult.ADDED
            else CommandStatus.ALREADY_PRESENT
        )
        return CommandResult(status=status, address=address, identity=identity)

    async def remove_validator(
        self, end_user: EndUser, conversation: Conversation, address: str
    ) -> CommandResult:
        address = address.strip()
        if not looks_like_address(address):
            return CommandResult(
                status=CommandStatus.INVALID_ADDRESS, address=address
            )

        try:
            async with self.gate:
                validators = await self.store.list_watched_validators(
                    end_user, conversation
                )
                if validators is None:
                    return CommandResult(status=CommandStatus.NO_SUBSCRIPTION)
                if all(v.address != address for v in validators):
                    return CommandResult(
                        status=CommandStatus.NOT_WATCHED, address=address
                    )

                result = await self.store.remove_watched_validator(
                    end_user, conversation, address
                )
        except StorageFailure as e:
            logger.error(f"Failed to remove validator {address}: {e}", exc_info=True)
            return CommandResult(status=CommandStatus.UNKNOWN_ERROR)

        if result is RemoveResult.NOT_FOUND:
            return CommandResult(status=CommandStatus.NO_SUBSCRIPTION)
        return CommandResult(status=CommandStatus.REMOVED, address=address)

    async def add_telemetry_node(
        self,
        end_user: EndUser,
        conversation: Conversation,
        channel: str,
        node: TelemetryNode,
    ) -> CommandResult:
        try:
            result = await self.store.add_watched_telemetry_node(
                end_user, conversation, channel, node
            )
        except StorageFailure as e:
            logger.error(f"Failed to add node {node.name}: {e}", exc_info=True)
            return CommandResult(status=CommandStatus.UNKNOWN_ERROR)

        status = (
            CommandStatus.ADDED
            if result is AddResult.ADDED
            else CommandStatus.ALREADY_PRESENT
        )
        return CommandResult(status=status, node=node)

    async def remove_telemetry_node(
        self, end_user: EndUser, conversation: Conversation, name: str
    ) -> CommandResult:
        try:
            async with self.gate:
                nodes = await self.store.list_watched_telemetry_nodes(
                    end_user, conversation
                )
                if nodes is None:
                    return CommandResult(status=CommandStatus.NO_SUBSCRIPTION)
                if all(n.name != name for n in nodes):
                    return CommandResult(status=CommandStatus.NOT_WATCHED)

                result = await self.store.remove_watched_telemetry_node(
                    end_user, conversation, name
                )
        except StorageFailure as e:
            logger.error(f"Failed to remove node {name}: {e}", exc_info=True)
            return CommandResult(status=CommandStatus.UNKNOWN_ERROR)

        if result is RemoveResult.NOT_FOUND:
            return CommandResult(status=CommandStatus.NO_SUBSCRIPTION)
        return CommandResult(status=CommandStatus.REMOVED)
