import enum
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator


class AddResult(str, enum.Enum):
    ADDED = "added"
    ALREADY_PRESENT = "already_present"


class RemoveResult(str, enum.Enum):
    REMOVED = "removed"
    NOT_FOUND = "not_found"


class EndUser(BaseModel):
    """Snapshot of the chat user issuing commands."""

    id: int
    is_bot: bool = False
    first_name: str | None = None
    last_name: str | None = None
    username: str | None = None
    language_code: str | None = None


class Conversation(BaseModel):
    """Snapshot of the chat the command was issued in."""

    id: int
    first_name: str | None = None
    last_name: str | None = None
    username: str | None = None
    title: str | None = None
    type: str = "private"


class Identity(BaseModel):
    display: str = ""
    display_parent: str = Field("", alias="displayParent")
    model_config = {"populate_by_name": True}

    @field_validator("display", "display_parent", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        # The chain returns no display for unnamed accounts
        return "" if value is None else value


class Nomination(BaseModel):
    count: int = Field(0, ge=0)
    amount: Decimal = Field(Decimal(0), ge=0)


class WatchedValidator(BaseModel):
    entry_id: int | None = None
    address: str = Field(..., min_length=1)
    nomination: Nomination = Field(default_factory=Nomination)
    identity: Identity = Field(default_factory=Identity)
    active: bool = False
    era: int = Field(0, ge=0)

    @field_validator("address", mode="before")
    @classmethod
    def _strip_address(cls, value):
        return value.strip() if isinstance(value, str) else value


class ValidatorActivity(BaseModel):
    era: int = Field(..., ge=0)
    active: bool


class TelemetryNode(BaseModel):
    """A node as reported by a telemetry feed."""

    node_id: int = Field(..., alias="id")
    name: str
    runtime: str = ""
    address: str | None = None
    is_stale: bool = Field(False, alias="isStale")
    model_config = {"populate_by_name": True}


class WatchedTelemetryNode(TelemetryNode):
    entry_id: int | None = None
    channel: str


class Subscription(BaseModel):
    id: int
    end_user: EndUser
    conversation: Conversation
    watched_validators: list[WatchedValidator] = []
    watched_telemetry_nodes: list[WatchedTelemetryNode] = []
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ChannelSubscription(BaseModel):
    """A conversation watching at least one node on a telemetry channel."""

    subscription_id: int
    conversation: Conversation
    telemetry: list[WatchedTelemetryNode]


class ExposureEntry(BaseModel):
    who: str
    value: Decimal = Field(Decimal(0), ge=0)


class Exposure(BaseModel):
    total: Decimal = Field(Decimal(0), ge=0)
    own: Decimal = Field(Decimal(0), ge=0)
    others: list[ExposureEntry] = []


class ValidatorPreferences(BaseModel):
    commission: Decimal = Field(Decimal(0), ge=0)
    blocked: bool = False


class ValidatorSnapshot(BaseModel):
    stash_id: str = Field(..., alias="stashId", min_length=1)
    controller_id: str | None = Field(None, alias="controllerId")
    exposure: Exposure = Field(default_factory=Exposure)
    preferences: ValidatorPreferences = Field(
        default_factory=ValidatorPreferences, alias="validatorPrefs"
    )
    identity: Identity = Field(default_factory=Identity)
    active: bool = False
    model_config = {"populate_by_name": True}

    @field_validator("stash_id", mode="before")
    @classmethod
    def _strip_stash(cls, value):
        return value.strip() if isinstance(value, str) else value
