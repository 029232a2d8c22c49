from typing import Dict, List, Optional

from expiry_notifier.db.models import ExpiryCondition
from expiry_notifier.schemas.notification_schemas import (
    EmailMessage,
    MailContent,
    NotificationBucket,
    PushBatch,
    ScannedAsset,
)
from expiry_notifier.utils.datetime_utils import format_for_display

PUSH_TITLES = {
    ExpiryCondition.EXPIRED: "Extinguisher Expired!",
    ExpiryCondition.EXPIRING_SOON: "Extinguisher Expiring Soon",
}

PUSH_BODY_PREFIXES = {
    ExpiryCondition.EXPIRED: "Expired",
    ExpiryCondition.EXPIRING_SOON: "Expiring soon",
}

EMAIL_SUBJECT = "Fire Extinguisher Expiry Alert"

EMAIL_TEMPLATE = (
    "Dear {salutation},\n\n"
    'Your extinguisher "{asset_name}" is expired or expiring soon ({expiry}).\n\n'
    "Please take action!"
)


class DispatchBatcher:
    """Groups pending recipients by channel and composes the payloads."""

    def __init__(
        self,
        default_asset_name: str = "Unnamed",
        default_salutation: str = "User",
        display_timezone: str = "UTC",
    ):
        self.default_asset_name = default_asset_name
        self.default_salutation = default_salutation
        self.display_timezone = display_timezone

    @staticmethod
    def _in_display_order(scanned: List[ScannedAsset]) -> List[ScannedAsset]:
        # Store iteration order is unspecified; display order is expiry then id
        return sorted(scanned, key=lambda s: (s.asset.expiry, s.asset.id))

    def build_push_batch(self, scanned: List[ScannedAsset]) -> Optional[PushBatch]:
        """
        One multicast payload covering every pending token of every asset.

        Returns None when no asset has a pending token.
        """
        with_tokens = [s for s in self._in_display_order(scanned) if s.recipients.push_tokens]
        if not with_tokens:
            return None

        condition = with_tokens[0].bucket.condition
        names: List[str] = []
        tokens: List[str] = []
        targets = []
        buckets: Dict[str, NotificationBucket] = {}

        for item in with_tokens:
            names.append(item.asset.display_name(self.default_asset_name))
            buckets[item.asset.id] = item.bucket
            for token in sorted(item.recipients.push_tokens):
                targets.append((item.asset.id, token))
                if token not in tokens:
                    tokens.append(token)

        return PushBatch(
            title=PUSH_TITLES[condition],
            body=f"{PUSH_BODY_PREFIXES[condition]}: {', '.join(names)}",
            tokens=tokens,
            targets=targets,
            buckets=buckets,
        )

    def build_email_messages(self, scanned: List[ScannedAsset]) -> List[EmailMessage]:
        """One personalised message per (asset, user) pair."""
        messages = []
        for item in self._in_display_order(scanned):
            user = item.recipients.email_target
            if user is None or not user.email:
                continue

            text = EMAIL_TEMPLATE.format(
                salutation=user.username or self.default_salutation,
                asset_name=item.asset.display_name(self.default_asset_name),
                expiry=format_for_display(item.asset.expiry, self.display_timezone),
            )
            messages.append(
                EmailMessage(
                    to=[user.email],
                    message=MailContent(subject=EMAIL_SUBJECT, text=text),
                    asset_id=item.asset.id,
                    user_id=user.user_id,
                    bucket=item.bucket,
                )
            )
        return messages
