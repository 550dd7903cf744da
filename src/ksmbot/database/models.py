"""
SQLAlchemy models for subscriptions and validator snapshots.
"""

from decimal import Decimal

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.types import TypeDecorator

from ksmbot.config import (
    SUBSCRIPTION_TABLE,
    VALIDATOR_SNAPSHOT_TABLE,
    WATCHED_TELEMETRY_TABLE,
    WATCHED_VALIDATOR_TABLE,
)
from ksmbot.models import (
    ChannelSubscription,
    Conversation,
    EndUser,
    Exposure,
    Identity,
    Nomination,
    Subscription,
    ValidatorPreferences,
    ValidatorSnapshot,
    WatchedTelemetryNode,
    WatchedValidator,
)

Base = declarative_base()

JSONDocument = JSON().with_variant(JSONB(), "postgresql")


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class DecimalText(TypeDecorator):
    """Exact decimal stored as text; planck amounts overflow float precision."""

    impl = String
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(to_decimal(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value)


class SubscriptionDB(Base):
    """Watch lists of one user in one conversation."""

    __tablename__ = SUBSCRIPTION_TABLE

    id = Column(Integer, primary_key=True, autoincrement=True)
    end_user_id = Column(BigInteger, nullable=False)
    conversation_id = Column(BigInteger, nullable=False)
    end_user = Column(JSONDocument, nullable=False)
    conversation = Column(JSONDocument, nullable=False)

    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(
        DateTime, default=func.now(), onupdate=func.now(), nullable=False
    )

    watched_validators = relationship(
        "WatchedValidatorDB",
        order_by="WatchedValidatorDB.id",
        cascade="all, delete-orphan",
    )
    watched_telemetry_nodes = relationship(
        "WatchedTelemetryNodeDB",
        order_by="WatchedTelemetryNodeDB.id",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint(
            "end_user_id", "conversation_id", name="uq_subscription_key"
        ),
        Index("idx_subscription_conversation", "conversation_id"),
    )

    def to_item(self) -> Subscription:
        return Subscription(
            id=self.id,
            end_user=EndUser.model_validate(self.end_user),
            conversation=Conversation.model_validate(self.conversation),
            watched_validators=[v.to_item() for v in self.watched_validators],
            watched_telemetry_nodes=[
                n.to_item() for n in self.watched_telemetry_nodes
            ],
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def to_channel_item(self) -> ChannelSubscription:
        return ChannelSubscription(
            subscription_id=self.id,
            conversation=Conversation.model_validate(self.conversation),
            telemetry=[n.to_item() for n in self.watched_telemetry_nodes],
        )

    def __repr__(self):
        return (
            f"<SubscriptionDB(id={self.id}, end_user_id={self.end_user_id}, "
            f"conversation_id={self.conversation_id})>"
        )


class WatchedValidatorDB(Base):
    """One validator address on a subscription's watch list."""

    __tablename__ = WATCHED_VALIDATOR_TABLE

    id = Column(Integer, primary_key=True, autoincrement=True)
    subscription_id = Column(
        Integer, ForeignKey(f"{SUBSCRIPTION_TABLE}.id"), nullable=False
    )
    address = Column(String, nullable=False)
    nomination_count = Column(Integer, nullable=False, default=0)
    nomination_amount = Column(DecimalText, nullable=False, default=Decimal(0))
    identity_display = Column(String, nullable=False, default="")
    identity_display_parent = Column(String, nullable=False, default="")
    active = Column(Boolean, nullable=False, default=False)
    era = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("subscription_id", "address", name="uq_watched_address"),
        Index("idx_watched_validator_address", "address"),
    )

    def to_item(self) -> WatchedValidator:
        return WatchedValidator(
            entry_id=self.id,
            address=self.address,
            nomination=Nomination(
                count=self.nomination_count, amount=self.nomination_amount
            ),
            identity=Identity(
                display=self.identity_display,
                display_parent=self.identity_display_parent,
            ),
            active=self.active,
            era=self.era,
        )


class WatchedTelemetryNodeDB(Base):
    """One telemetry node on a subscription's watch list."""

    __tablename__ = WATCHED_TELEMETRY_TABLE

    id = Column(Integer, primary_key=True, autoincrement=True)
    subscription_id = Column(
        Integer, ForeignKey(f"{SUBSCRIPTION_TABLE}.id"), nullable=False
    )
    channel = Column(String, nullable=False)
    node_id = Column(BigInteger, nullable=False)
    name = Column(String, nullable=False)
    runtime = Column(String, nullable=False, default="")
    address = Column(String, nullable=True)  # not every node reports one
    is_stale = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("subscription_id", "node_id", name="uq_watched_node"),
        Index("idx_watched_node_channel", "channel"),
    )

    def to_item(self) -> WatchedTelemetryNode:
        return WatchedTelemetryNode(
            entry_id=self.id,
            channel=self.channel,
            node_id=self.node_id,
            name=self.name,
            runtime=self.runtime,
            address=self.address,
            is_stale=self.is_stale,
        )


class ValidatorSnapshotDB(Base):
    """Chain state of one validator, shared by all subscriptions."""

    __tablename__ = VALIDATOR_SNAPSHOT_TABLE

    id = Column(Integer, primary_key=True, autoincrement=True)
    stash_id = Column(String, nullable=False, unique=True, index=True)
    controller_id = Column(String, nullable=True)
    exposure = Column(JSONDocument, nullable=False)
    commission = Column(DecimalText, nullable=False, default=Decimal(0))
    blocked = Column(Boolean, nullable=False, default=False)
    identity_display = Column(String, nullable=False, default="")
    identity_display_parent = Column(String, nullable=False, default="")
    active = Column(Boolean, nullable=False, default=False)

    inserted_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(
        DateTime, default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        Index("idx_identity_display", "identity_display"),
        Index(
            "idx_identity_parent_display",
            "identity_display_parent",
            "identity_display",
        ),
    )

    def apply(self, snapshot: ValidatorSnapshot) -> None:
        """Overwrite every mutable field from a crawler snapshot."""
        self.controller_id = snapshot.controller_id
        self.exposure = snapshot.exposure.model_dump(mode="json")
        self.commission = snapshot.preferences.commission
        self.blocked = snapshot.preferences.blocked
        self.identity_display = snapshot.identity.display
        self.identity_display_parent = snapshot.identity.display_parent
        self.active = snapshot.active

    def to_item(self) -> ValidatorSnapshot:
        return ValidatorSnapshot(
            stash_id=self.stash_id,
            controller_id=self.controller_id,
            exposure=Exposure.model_validate(self.exposure),
            preferences=ValidatorPreferences(
                commission=self.commission, blocked=self.blocked
            ),
            identity=Identity(
                display=self.identity_display,
                display_parent=self.identity_display_parent,
            ),
            active=self.active,
        )

    def __repr__(self):
        return (
            f"<ValidatorSnapshotDB(stash_id={self.stash_id}, "
            f"display={self.identity_display}, active={self.active})>"
        )
