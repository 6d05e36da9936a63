"""Shared fixtures: in-memory managers standing in for the database-backed ones."""

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional

import pytest

from auth import AuthManager, InvalidCredentialsError, UserExistsError, hash_password, verify_password
from listings import (
    ListingNotFoundError, ListingNotAvailableError, AlreadyPurchasedError,
    InvalidListingError, validate_metadata,
    STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED
)
from notifications import NotificationError, NOTIFICATION_TYPES
from storage import AssetStore

TEST_SECRET = "test-secret"

class FakeUpload:
    """Minimal stand-in for fastapi.UploadFile."""

    def __init__(self, data: bytes, filename: str = "cube.stl", size: Optional[int] = None):
        self.data = data
        self.filename = filename
        self.size = size
        self._offset = 0

    async def read(self, size: int = -1) -> bytes:
        if size < 0:
            size = len(self.data) - self._offset
        chunk = self.data[self._offset:self._offset + size]
        self._offset += len(chunk)
        return chunk

class MemoryAuthManager(AuthManager):
    """AuthManager with users kept in a dict instead of the users table."""

    def __init__(self):
        super().__init__(pool=object(), secret=TEST_SECRET, token_expiry_hours=1)
        self.users: Dict[str, Dict[str, Any]] = {}

    def add_user(self, username: str, role: str = 'artist', password: Optional[str] = None) -> Dict[str, Any]:
        user = {
            'id': str(uuid.uuid4()),
            'username': username,
            'email': f"{username}@example.com",
            'role': role,
            'password_hash': hash_password(password) if password else None
        }
        self.users[user['id']] = user
        return self._public(user)

    def token_for(self, user: Dict[str, Any]) -> str:
        return self.create_token(user)

    @staticmethod
    def _public(user):
        return {k: user[k] for k in ('id', 'username', 'email', 'role')}

    async def signup(self, username, email, password):
        if any(u['email'] == email or u['username'] == username for u in self.users.values()):
            raise UserExistsError("User already exists")
        user = {
            'id': str(uuid.uuid4()),
            'username': username,
            'email': email,
            'role': 'artist',
            'password_hash': hash_password(password)
        }
        self.users[user['id']] = user
        public = self._public(user)
        return {'token': self.create_token(public), 'user': public}

    async def signin(self, email, password):
        user = next((u for u in self.users.values() if u['email'] == email), None)
        if not user or not user['password_hash'] or not verify_password(password, user['password_hash']):
            raise InvalidCredentialsError("Invalid credentials")
        public = self._public(user)
        return {'token': self.create_token(public), 'user': public}

    async def get_user(self, user_id):
        user = self.users.get(str(user_id))
        return self._public(user) if user else None

class MemoryListingManager:
    """Mirrors ListingManager semantics over a dict of records."""

    def __init__(self, auth: MemoryAuthManager):
        self.auth = auth
        self.records: Dict[str, Dict[str, Any]] = {}
        self.fail_delete: Optional[Exception] = None
        self.fail_create: Optional[Exception] = None

    def _username(self, user_id):
        user = self.auth.users.get(user_id)
        return user['username'] if user else None

    def _view(self, record):
        return {
            '_id': record['id'],
            'title': record['title'],
            'description': record['description'],
            'price': float(record['price']),
            'fileUrl': record['file_url'],
            'creator': {'_id': record['creator_id'], 'username': self._username(record['creator_id'])},
            'status': record['status'],
            'createdAt': record['created_at'].isoformat(),
            'purchases': [{
                'buyer': {'_id': p['buyer_id'], 'username': self._username(p['buyer_id'])},
                'purchaseDate': p['purchase_date'].isoformat()
            } for p in record['purchases']]
        }

    def _visible(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        records = [
            r for r in self.records.values()
            if r['status'] != STATUS_REJECTED and (status is None or r['status'] == status)
        ]
        records.sort(key=lambda r: r['created_at'], reverse=True)
        return [self._view(r) for r in records]

    async def create(self, title, description, price, creator_id, file_url):
        await asyncio.sleep(0)
        if self.fail_create:
            raise self.fail_create
        metadata = validate_metadata(title, description, price)
        if not file_url:
            raise InvalidListingError("File reference is required")
        record = {
            'id': str(uuid.uuid4()),
            'title': metadata['title'],
            'description': metadata['description'],
            'price': metadata['price'],
            'file_url': file_url,
            'creator_id': str(creator_id),
            'status': STATUS_PENDING,
            'created_at': datetime.now(timezone.utc),
            'purchases': []
        }
        self.records[record['id']] = record
        return self._view(record)

    async def get(self, listing_id):
        await asyncio.sleep(0)
        record = self.records.get(str(listing_id))
        if not record or record['status'] == STATUS_REJECTED:
            raise ListingNotFoundError(f"Listing {listing_id} not found")
        return self._view(record)

    async def list_by_status(self, status):
        return self._visible(status)

    async def list_by_owner(self, owner_id):
        return [m for m in self._visible() if m['creator']['_id'] == str(owner_id)]

    async def list_public(self):
        return self._visible(STATUS_APPROVED)

    async def list_all(self, status=None):
        return self._visible(status)

    async def _transition(self, listing_id, to_status):
        await asyncio.sleep(0)
        record = self.records.get(str(listing_id))
        if not record or record['status'] != STATUS_PENDING:
            raise ListingNotFoundError(f"Listing {listing_id} not found or already moderated")
        record['status'] = to_status
        return record

    async def set_approved(self, listing_id):
        return self._view(await self._transition(listing_id, STATUS_APPROVED))

    async def mark_rejected(self, listing_id):
        await self._transition(listing_id, STATUS_REJECTED)

    async def delete(self, listing_id):
        await asyncio.sleep(0)
        if self.fail_delete:
            raise self.fail_delete
        if self.records.pop(str(listing_id), None) is None:
            raise ListingNotFoundError(f"Listing {listing_id} not found")

    async def add_purchase(self, listing_id, buyer_id):
        record = self.records.get(str(listing_id))
        if not record or record['status'] == STATUS_REJECTED:
            raise ListingNotFoundError(f"Listing {listing_id} not found")
        if record['status'] != STATUS_APPROVED:
            raise ListingNotAvailableError("Model is not available for purchase")
        if any(p['buyer_id'] == str(buyer_id) for p in record['purchases']):
            raise AlreadyPurchasedError("You have already purchased this model")
        record['purchases'].append({
            'buyer_id': str(buyer_id),
            'purchase_date': datetime.now(timezone.utc)
        })
        return self._view(record)

class MemoryNotificationManager:
    """Mirrors NotificationManager over a dict of lists."""

    def __init__(self):
        self.by_user: Dict[str, List[Dict[str, Any]]] = {}
        self.fail: Optional[Exception] = None

    async def add(self, user_id, type, model_title, message):
        if self.fail:
            raise self.fail
        if type not in NOTIFICATION_TYPES:
            raise NotificationError(f"Unknown notification type: {type}")
        notification = {
            '_id': str(uuid.uuid4()),
            'message': message,
            'modelTitle': model_title,
            'type': type,
            'createdAt': datetime.now(timezone.utc).isoformat()
        }
        self.by_user.setdefault(str(user_id), []).append(notification)
        return notification

    async def list(self, user_id):
        return list(self.by_user.get(str(user_id), []))

    async def clear(self, user_id):
        return len(self.by_user.pop(str(user_id), []))

@pytest.fixture
def auth_manager():
    return MemoryAuthManager()

@pytest.fixture
def listing_manager(auth_manager):
    return MemoryListingManager(auth_manager)

@pytest.fixture
def notification_manager():
    return MemoryNotificationManager()

@pytest.fixture
def upload_root(tmp_path):
    return tmp_path / "uploads"

@pytest.fixture
def asset_store(upload_root):
    return AssetStore(
        root=upload_root,
        max_bytes=1024,
        allowed_extension='.stl',
        chunk_size=64
    )

@pytest.fixture
def artist(auth_manager):
    return auth_manager.add_user("alice")

@pytest.fixture
def buyer(auth_manager):
    return auth_manager.add_user("bob")

@pytest.fixture
def admin(auth_manager):
    return auth_manager.add_user("root", role='admin')

def stored_files(root) -> List[str]:
    """Names of the files currently in the upload root."""
    if not root.exists():
        return []
    return sorted(p.name for p in root.iterdir())
