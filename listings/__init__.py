"""Listings module for managing marketplace model listings.

This module provides functionality for:
- Creating listings for uploaded model files
- Moderation status transitions (pending -> approved, pending -> rejected)
- Catalog queries by status and by owner
- Recording purchases
"""

import logging
import math
import uuid
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Any, Union

import asyncpg

from database import get_pool
from .get_listing import (
    get_listing, fetch_listings, parse_id, serialize_listing, HIDDEN_STATUS
)

logger = logging.getLogger(__name__)

STATUS_PENDING = 'pending'
STATUS_APPROVED = 'approved'
STATUS_REJECTED = HIDDEN_STATUS

class ListingError(Exception):
    """Base exception for listing operations."""
    pass

class ListingNotFoundError(ListingError):
    """Raised when a listing is not found."""
    pass

class InvalidListingError(ListingError):
    """Raised when listing metadata is invalid."""
    pass

class ListingNotAvailableError(ListingError):
    """Raised when purchasing a listing that is not approved."""
    pass

class AlreadyPurchasedError(ListingError):
    """Raised when a buyer purchases the same listing twice."""
    pass

def parse_price(value: Any) -> Decimal:
    """Parse a price into a finite, non-negative Decimal.

    Prices are served as JSON numbers, so the value must also fit a float.

    Raises:
        InvalidListingError: If the value is not a valid price
    """
    if isinstance(value, bool) or value is None:
        raise InvalidListingError("Price is required")
    try:
        price = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidListingError(f"Invalid price: {value!r}")
    if not price.is_finite() or not math.isfinite(float(price)):
        raise InvalidListingError(f"Invalid price: {value!r}")
    if price < 0:
        raise InvalidListingError("Price must not be negative")
    return price

def validate_metadata(title: Any, description: Any, price: Any) -> Dict[str, Any]:
    """Validate and normalise listing metadata.

    Returns:
        Dict with title, description and price (Decimal)

    Raises:
        InvalidListingError: If a field is missing or malformed
    """
    if not isinstance(title, str) or not title.strip():
        raise InvalidListingError("Title is required")
    if description is not None and not isinstance(description, str):
        raise InvalidListingError("Description must be text")
    return {
        'title': title.strip(),
        'description': description or '',
        'price': parse_price(price)
    }

class ListingManager:
    """Manager class for handling listing operations."""

    def __init__(self, pool=None):
        """Initialize the listing manager.

        Args:
            pool: Optional database pool. If not provided, will get from database module.
        """
        self.pool = pool

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def create(
        self,
        title: str,
        description: Optional[str],
        price: Any,
        creator_id: Union[str, uuid.UUID],
        file_url: str
    ) -> Dict[str, Any]:
        """Create a pending listing for a stored file.

        Args:
            title: Listing title
            description: Optional description
            price: Non-negative price
            creator_id: Owning user's id
            file_url: Asset store reference of the model file

        Returns:
            Dict containing the created listing

        Raises:
            InvalidListingError: If metadata is invalid
        """
        metadata = validate_metadata(title, description, price)
        owner = parse_id(creator_id)
        if owner is None:
            raise InvalidListingError(f"Invalid creator id: {creator_id}")
        if not file_url:
            raise InvalidListingError("File reference is required")

        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            listing_id = await conn.fetchval(
                '''
                INSERT INTO models (
                    title, description, price, file_url, creator_id, status
                ) VALUES ($1, $2, $3, $4, $5, $6)
                RETURNING id
                ''',
                metadata['title'],
                metadata['description'],
                metadata['price'],
                file_url,
                owner,
                STATUS_PENDING
            )

        logger.info(f"Created listing {listing_id} ({metadata['title']}) for {owner}")
        return await self.get(listing_id)

    async def get(self, listing_id: Union[str, uuid.UUID]) -> Dict[str, Any]:
        """Get a listing by ID.

        Raises:
            ListingNotFoundError: If listing doesn't exist
        """
        await self.ensure_pool()
        try:
            return await get_listing(listing_id, self.pool)
        except LookupError as e:
            raise ListingNotFoundError(str(e))

    async def list_by_status(self, status: str) -> List[Dict[str, Any]]:
        """Listings in one status, newest first."""
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            return await fetch_listings(conn, 'm.status = $1', status)

    async def list_by_owner(self, owner_id: Union[str, uuid.UUID]) -> List[Dict[str, Any]]:
        """All visible listings created by a user, newest first."""
        owner = parse_id(owner_id)
        if owner is None:
            return []

        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            return await fetch_listings(conn, 'm.creator_id = $1', owner)

    async def list_public(self) -> List[Dict[str, Any]]:
        """The public catalog: approved listings only."""
        return await self.list_by_status(STATUS_APPROVED)

    async def list_all(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        """Every visible listing, optionally filtered by status."""
        if status:
            return await self.list_by_status(status)

        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            return await fetch_listings(conn)

    async def _transition(self, listing_id, to_status: str) -> uuid.UUID:
        """Move a pending listing to ``to_status``.

        The update is conditional on the listing still being pending, so of
        two concurrent moderation decisions only the first to commit applies.

        Raises:
            ListingNotFoundError: If the listing is unknown or no longer pending
        """
        parsed = parse_id(listing_id)
        if parsed is None:
            raise ListingNotFoundError(f"Listing {listing_id} not found")

        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            updated = await conn.fetchval(
                '''
                UPDATE models SET status = $2
                WHERE id = $1 AND status = $3
                RETURNING id
                ''',
                parsed,
                to_status,
                STATUS_PENDING
            )

        if updated is None:
            raise ListingNotFoundError(f"Listing {listing_id} not found or already moderated")
        return updated

    async def set_approved(self, listing_id: Union[str, uuid.UUID]) -> Dict[str, Any]:
        """Approve a pending listing.

        Raises:
            ListingNotFoundError: If the listing is unknown or no longer pending
        """
        updated = await self._transition(listing_id, STATUS_APPROVED)
        logger.info(f"Listing {updated} approved")
        return await self.get(updated)

    async def mark_rejected(self, listing_id: Union[str, uuid.UUID]) -> None:
        """Tombstone a pending listing ahead of its removal.

        Raises:
            ListingNotFoundError: If the listing is unknown or no longer pending
        """
        updated = await self._transition(listing_id, STATUS_REJECTED)
        logger.info(f"Listing {updated} marked rejected")

    async def delete(self, listing_id: Union[str, uuid.UUID]) -> None:
        """Delete a listing record and its purchases.

        Raises:
            ListingNotFoundError: If listing doesn't exist
        """
        parsed = parse_id(listing_id)
        if parsed is None:
            raise ListingNotFoundError(f"Listing {listing_id} not found")

        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            deleted = await conn.fetchval(
                'DELETE FROM models WHERE id = $1 RETURNING id',
                parsed
            )

        if deleted is None:
            raise ListingNotFoundError(f"Listing {listing_id} not found")
        logger.info(f"Listing {deleted} deleted from database")

    async def add_purchase(
        self,
        listing_id: Union[str, uuid.UUID],
        buyer_id: Union[str, uuid.UUID]
    ) -> Dict[str, Any]:
        """Record a purchase of an approved listing.

        Raises:
            ListingNotFoundError: If listing doesn't exist
            ListingNotAvailableError: If the listing is not approved
            AlreadyPurchasedError: If the buyer already owns the listing
        """
        parsed = parse_id(listing_id)
        buyer = parse_id(buyer_id)
        if parsed is None:
            raise ListingNotFoundError(f"Listing {listing_id} not found")
        if buyer is None:
            raise ListingError(f"Invalid buyer id: {buyer_id}")

        listing = await self.get(parsed)
        if listing['status'] != STATUS_APPROVED:
            raise ListingNotAvailableError("Model is not available for purchase")
        if any(p['buyer']['_id'] == str(buyer) for p in listing['purchases']):
            raise AlreadyPurchasedError("You have already purchased this model")

        async with self.pool.acquire() as conn:
            try:
                inserted = await conn.fetchval(
                    '''
                    INSERT INTO model_purchases (model_id, buyer_id)
                    VALUES ($1, $2)
                    ON CONFLICT (model_id, buyer_id) DO NOTHING
                    RETURNING model_id
                    ''',
                    parsed,
                    buyer
                )
            except asyncpg.exceptions.ForeignKeyViolationError:
                # Listing deleted between the read and the insert
                raise ListingNotFoundError(f"Listing {listing_id} not found")

        if inserted is None:
            raise AlreadyPurchasedError("You have already purchased this model")

        logger.info(f"Recorded purchase of {parsed} by {buyer}")
        return await self.get(parsed)

# Create global instance
manager = ListingManager()

def get_listing_manager() -> ListingManager:
    """FastAPI dependency returning the listing manager."""
    return manager

__all__ = [
    'ListingManager',
    'manager',
    'get_listing_manager',
    'get_listing',
    'serialize_listing',
    'parse_price',
    'validate_metadata',
    'STATUS_PENDING',
    'STATUS_APPROVED',
    'STATUS_REJECTED',
    'ListingError',
    'ListingNotFoundError',
    'InvalidListingError',
    'ListingNotAvailableError',
    'AlreadyPurchasedError'
]
