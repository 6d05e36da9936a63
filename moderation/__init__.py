"""Upload and moderation workflow.

Ties the asset store, the listing store and user notifications together:

- upload: store the file, then create a pending listing; the stored file is
  removed again if anything after the write fails
- approve: pending -> approved, then notify the owner
- reject: pending -> removed, deleting the file and notifying the owner
- owner delete: the creator removes their own listing and its file

Only the primary write of each operation can fail the request. Cleanup and
notification steps are best-effort: their failures are logged and reported
in ``ModerationResult.warnings`` instead of being raised.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional

from fastapi import Depends

from listings import (
    ListingManager, ListingNotFoundError, validate_metadata,
    manager as default_listings, get_listing_manager,
    STATUS_APPROVED, STATUS_REJECTED
)
from notifications import (
    NotificationManager, approval_message, rejection_message,
    manager as default_notifications, get_notification_manager,
    TYPE_APPROVAL, TYPE_REJECTION
)
from storage import AssetStore, AssetError, asset_store as default_assets, get_asset_store

logger = logging.getLogger(__name__)

MODERATION_STATUSES = (STATUS_APPROVED, STATUS_REJECTED)

class ModerationError(Exception):
    """Base exception for moderation operations."""
    pass

class ForbiddenError(ModerationError):
    """Raised when the caller does not own the listing."""
    pass

class InvalidStatusError(ModerationError):
    """Raised for a moderation decision other than approved/rejected."""
    pass

@dataclass
class ModerationResult:
    """Outcome of a workflow step.

    ``warnings`` collects the failures of best-effort steps; an empty list
    means every step succeeded.
    """
    listing_id: str
    listing: Optional[Dict[str, Any]] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def warning(self) -> Optional[str]:
        return '; '.join(self.warnings) if self.warnings else None

class ModerationWorkflow:
    """Coordinates listing state changes with file and notification side effects."""

    def __init__(
        self,
        listings: Optional[ListingManager] = None,
        notifications: Optional[NotificationManager] = None,
        assets: Optional[AssetStore] = None
    ):
        self.listings = listings or default_listings
        self.notifications = notifications or default_notifications
        self.assets = assets or default_assets

    async def upload(
        self,
        user: Dict[str, Any],
        upload,
        filename: Optional[str],
        title: Any,
        description: Any,
        price: Any
    ) -> ModerationResult:
        """Store an uploaded model file and create its pending listing.

        Raises:
            InvalidAssetError: If the file is rejected by the asset store
            StorageFailureError: If the file cannot be written
            InvalidListingError: If the metadata is invalid
        """
        reference = await self.assets.store(upload, filename)

        try:
            metadata = validate_metadata(title, description, price)
            listing = await self.listings.create(
                title=metadata['title'],
                description=metadata['description'],
                price=metadata['price'],
                creator_id=user['id'],
                file_url=reference
            )
        except (Exception, asyncio.CancelledError):
            await self._discard_upload(reference)
            raise

        return ModerationResult(listing_id=listing['_id'], listing=listing)

    async def approve(self, listing_id) -> ModerationResult:
        """Approve a pending listing and notify its owner.

        Raises:
            ListingNotFoundError: If the listing is unknown or already moderated
        """
        listing = await self.listings.set_approved(listing_id)
        result = ModerationResult(listing_id=listing['_id'], listing=listing)

        await self._notify(
            result,
            listing['creator']['_id'],
            TYPE_APPROVAL,
            listing['title'],
            approval_message(listing['title'])
        )
        return result

    async def reject(self, listing_id) -> ModerationResult:
        """Reject a pending listing, removing its file and its record.

        The listing is first claimed by moving it out of pending, so a
        concurrent approval loses and the listing can never return to the
        pending queue, even if the final delete fails.

        Raises:
            ListingNotFoundError: If the listing is unknown or already moderated
        """
        listing = await self.listings.get(listing_id)
        await self.listings.mark_rejected(listing['_id'])
        result = ModerationResult(listing_id=listing['_id'])

        await self._remove_asset(result, listing['fileUrl'])
        await self._notify(
            result,
            listing['creator']['_id'],
            TYPE_REJECTION,
            listing['title'],
            rejection_message(listing['title'])
        )

        try:
            await self.listings.delete(listing['_id'])
        except ListingNotFoundError:
            logger.info(f"Listing {listing['_id']} already removed from database")
        except Exception as e:
            logger.error(f"Error deleting rejected listing {listing['_id']}: {e}")
            result.warnings.append(
                "Model was rejected but its record could not be removed from the database"
            )

        logger.info(f"Listing {listing['_id']} rejected")
        return result

    async def set_status(self, listing_id, status: str) -> ModerationResult:
        """Apply a moderation decision.

        Raises:
            InvalidStatusError: If ``status`` is not approved or rejected
            ListingNotFoundError: If the listing is unknown or already moderated
        """
        if status == STATUS_APPROVED:
            return await self.approve(listing_id)
        if status == STATUS_REJECTED:
            return await self.reject(listing_id)
        raise InvalidStatusError("Invalid status")

    async def owner_delete(self, user: Dict[str, Any], listing_id) -> ModerationResult:
        """Delete a listing on behalf of its creator.

        Raises:
            ListingNotFoundError: If the listing doesn't exist
            ForbiddenError: If the caller is not the creator
        """
        listing = await self.listings.get(listing_id)
        if listing['creator']['_id'] != str(user['id']):
            logger.info(
                f"Delete refused - user {user['id']} does not own {listing['_id']}"
            )
            raise ForbiddenError("Not authorized to delete this model")

        result = ModerationResult(listing_id=listing['_id'])
        await self._remove_asset(result, listing['fileUrl'])
        await self.listings.delete(listing['_id'])
        return result

    async def _remove_asset(self, result: ModerationResult, reference: str) -> None:
        try:
            await self.assets.delete(reference)
        except Exception as e:
            logger.error(f"Error deleting file {reference}: {e}")
            result.warnings.append("Encountered issues cleaning up the model file")

    async def _notify(
        self,
        result: ModerationResult,
        user_id: str,
        type: str,
        title: str,
        message: str
    ) -> None:
        try:
            await self.notifications.add(user_id, type, title, message)
        except Exception as e:
            logger.error(f"Error sending {type} notification to {user_id}: {e}")
            result.warnings.append("Owner notification could not be delivered")

    async def _discard_upload(self, reference: str) -> None:
        try:
            await self.assets.delete(reference)
        except AssetError as e:
            logger.error(f"Error cleaning up file {reference}: {e}")

def get_workflow(
    listings: ListingManager = Depends(get_listing_manager),
    notifications: NotificationManager = Depends(get_notification_manager),
    assets: AssetStore = Depends(get_asset_store)
) -> ModerationWorkflow:
    """FastAPI dependency building the workflow from the injected stores."""
    return ModerationWorkflow(listings, notifications, assets)

__all__ = [
    'ModerationWorkflow',
    'ModerationResult',
    'get_workflow',
    'MODERATION_STATUSES',
    'ModerationError',
    'ForbiddenError',
    'InvalidStatusError'
]
