from typing import Dict, Any, List, Optional, Sequence, Union
from database import get_pool
import uuid

# Rejected listings are tombstones awaiting removal and never visible
HIDDEN_STATUS = 'rejected'

LISTING_SELECT = '''
    SELECT
        m.id, m.title, m.description, m.price, m.file_url,
        m.status, m.created_at, m.creator_id,
        u.username AS creator_username
    FROM models m
    LEFT JOIN users u ON u.id = m.creator_id
'''

def parse_id(value: Union[str, uuid.UUID, None]) -> Optional[uuid.UUID]:
    """Parse a record id, returning None for anything that is not a UUID."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None

def serialize_listing(row, purchases: Sequence[Any] = ()) -> Dict[str, Any]:
    """Convert a listing row and its purchase rows to a JSON-ready dict.

    Keys use the marketplace client's field names (``_id``, ``fileUrl``, ...).
    """
    return {
        '_id': str(row['id']),
        'title': row['title'],
        'description': row['description'],
        'price': float(row['price']),
        'fileUrl': row['file_url'],
        'creator': {
            '_id': str(row['creator_id']),
            'username': row['creator_username']
        },
        'status': row['status'],
        'createdAt': row['created_at'].isoformat() if row['created_at'] else None,
        'purchases': [{
            'buyer': {
                '_id': str(p['buyer_id']),
                'username': p['buyer_username']
            },
            'purchaseDate': p['purchase_date'].isoformat() if p['purchase_date'] else None
        } for p in purchases]
    }

async def fetch_purchases(conn, listing_ids: List[uuid.UUID]) -> Dict[uuid.UUID, List[Any]]:
    """Load purchase rows (with buyer usernames) for a batch of listings."""
    grouped: Dict[uuid.UUID, List[Any]] = {listing_id: [] for listing_id in listing_ids}
    if not listing_ids:
        return grouped

    rows = await conn.fetch(
        '''
        SELECT p.model_id, p.buyer_id, p.purchase_date, b.username AS buyer_username
        FROM model_purchases p
        LEFT JOIN users b ON b.id = p.buyer_id
        WHERE p.model_id = ANY($1::UUID[])
        ORDER BY p.purchase_date
        ''',
        listing_ids
    )
    for row in rows:
        grouped[row['model_id']].append(row)
    return grouped

async def fetch_listings(conn, where: str = '', *args, order: str = 'm.created_at DESC') -> List[Dict[str, Any]]:
    """Run a listing query and attach purchases to every row.

    Args:
        conn: Database connection
        where: Extra SQL condition ANDed with the visibility filter
        args: Query parameters for ``where``
        order: ORDER BY clause
    """
    condition = f"m.status <> '{HIDDEN_STATUS}'"
    if where:
        condition += f" AND ({where})"

    rows = await conn.fetch(
        f"{LISTING_SELECT} WHERE {condition} ORDER BY {order}",
        *args
    )
    purchases = await fetch_purchases(conn, [row['id'] for row in rows])
    return [serialize_listing(row, purchases[row['id']]) for row in rows]

async def get_listing(listing_id: Union[str, uuid.UUID], pool=None) -> Dict[str, Any]:
    """Get a listing by ID with its creator and purchases.

    Args:
        listing_id: The listing UUID

    Returns:
        Dict containing listing details including purchases

    Raises:
        LookupError: If listing doesn't exist
    """
    parsed = parse_id(listing_id)
    if parsed is None:
        raise LookupError(f"Listing {listing_id} not found")

    if pool is None:
        pool = await get_pool()

    async with pool.acquire() as conn:
        listings = await fetch_listings(conn, 'm.id = $1', parsed)

    if not listings:
        raise LookupError(f"Listing {listing_id} not found")
    return listings[0]
