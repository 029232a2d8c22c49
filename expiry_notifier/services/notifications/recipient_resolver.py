from expiry_notifier.providers.user_directory import UserDirectory
from expiry_notifier.schemas.notification_schemas import AssetRecord, ResolvedRecipients
from expiry_notifier.utils.errors import ResolutionError
from expiry_notifier.utils.logging import get_logger

logger = get_logger()


class RecipientResolver:
    """Maps an extinguisher to the device tokens and mailbox of its owner."""

    def __init__(self, user_directory: UserDirectory):
        self.user_directory = user_directory

    def resolve(self, asset: AssetRecord) -> ResolvedRecipients:
        """
        Resolve notification targets for one asset.

        An asset with no owner, or whose owner is unknown, resolves to an
        empty target set. That is a normal outcome, not an error.

        Raises:
            ResolutionError: The user directory lookup itself failed
        """
        if not asset.user_id:
            return ResolvedRecipients()

        try:
            user = self.user_directory.get_user(asset.user_id)
        except Exception as e:
            raise ResolutionError(
                f"User lookup failed for {asset.user_id}: {e}", asset_id=asset.id
            ) from e

        if not user:
            logger.debug(
                f"Owner {asset.user_id} of extinguisher {asset.id} not found"
            )
            return ResolvedRecipients()

        return ResolvedRecipients(
            push_tokens=user.push_tokens,
            email_target=user if user.email else None,
        )
