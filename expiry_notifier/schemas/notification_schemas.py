from datetime import datetime
from typing import Dict, FrozenSet, List, Optional, Tuple
from pydantic import ConfigDict, Field, field_validator

from expiry_notifier.db.models import ExpiryCondition
from expiry_notifier.schemas.camel_base_model import CamelCaseBaseModel as BaseModel
from expiry_notifier.utils.datetime_utils import isoformat_utc, to_utc


class AssetRecord(BaseModel):
    """A fire extinguisher as read from the record store."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Unique asset identifier")
    name: Optional[str] = Field(None, description="Display name, may be empty")
    expiry: datetime = Field(..., description="Expiry instant, UTC")
    user_id: Optional[str] = Field(None, description="Owning user identifier")

    @field_validator("expiry")
    def expiry_as_utc(cls, v: datetime) -> datetime:
        return to_utc(v)

    def display_name(self, default: str) -> str:
        return self.name or default


class UserContact(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., description="User identifier")
    email: Optional[str] = Field(None, description="Email address")
    username: Optional[str] = Field(None, description="Name used in greetings")
    push_tokens: FrozenSet[str] = Field(
        default_factory=frozenset,
        alias="fcmTokens",
        description="Registered FCM device tokens",
    )


class ResolvedRecipients(BaseModel):
    push_tokens: FrozenSet[str] = Field(default_factory=frozenset)
    email_target: Optional[UserContact] = None

    @property
    def is_empty(self) -> bool:
        return not self.push_tokens and self.email_target is None


class NotificationBucket(BaseModel):
    """
    Which expiry condition a notification marker applies to.

    The key embeds the expiry value, so an extinguisher whose expiry is
    renewed upstream falls into a new bucket that has not been notified.
    """

    model_config = ConfigDict(frozen=True)

    condition: ExpiryCondition
    expiry: datetime

    @property
    def key(self) -> str:
        return f"{self.condition.value}:{isoformat_utc(self.expiry)}"


class ScannedAsset(BaseModel):
    """An asset paired with the recipients still owed a notification this sweep."""

    asset: AssetRecord
    bucket: NotificationBucket
    recipients: ResolvedRecipients


class PushBatch(BaseModel):
    title: str
    body: str
    tokens: List[str] = Field(default_factory=list)
    # (asset_id, token) pairs this batch delivers, used for marking
    targets: List[Tuple[str, str]] = Field(default_factory=list)
    buckets: Dict[str, NotificationBucket] = Field(default_factory=dict)


class MailContent(BaseModel):
    subject: str
    text: str


class EmailMessage(BaseModel):
    to: List[str]
    message: MailContent
    asset_id: str = Field(..., exclude=True)
    user_id: str = Field(..., exclude=True)
    bucket: NotificationBucket = Field(..., exclude=True)

    def to_document(self) -> dict:
        """Outbound mail document shape: {"to": [...], "message": {...}}."""
        return self.model_dump(by_alias=True)


class PushDeliveryReport(BaseModel):
    succeeded: List[str] = Field(default_factory=list)
    failed: Dict[str, str] = Field(
        default_factory=dict, description="Token to provider error"
    )


class SweepResult(BaseModel):
    sweep: str
    threshold: datetime
    scanned: int = 0
    resolution_failures: int = 0
    push_marked: int = 0
    push_failed: int = 0
    emails_marked: int = 0
    emails_failed: int = 0
    mark_failures: int = 0
    skipped: bool = False

