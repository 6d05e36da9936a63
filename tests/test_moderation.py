"""Tests for the upload and moderation workflow."""

import asyncio

import pytest

from listings import (
    ListingNotFoundError, InvalidListingError,
    STATUS_PENDING, STATUS_APPROVED
)
from moderation import ModerationWorkflow, ForbiddenError, InvalidStatusError
from notifications import TYPE_APPROVAL, TYPE_REJECTION, approval_message, rejection_message
from storage import InvalidAssetError, StorageFailureError
from conftest import FakeUpload, stored_files

STL_BYTES = b"solid cube\nendsolid cube\n"

class BrokenAssetStore:
    """Wraps a real store but refuses to delete."""

    def __init__(self, store):
        self.store = store

    def __getattr__(self, name):
        return getattr(self.store, name)

    async def delete(self, reference):
        raise StorageFailureError("Permission denied")

@pytest.fixture
def workflow(listing_manager, notification_manager, asset_store):
    return ModerationWorkflow(listing_manager, notification_manager, asset_store)

async def upload(workflow, user, title="Cube", price="9.99", name="cube.stl"):
    result = await workflow.upload(
        user, FakeUpload(STL_BYTES), name,
        title=title, description="A cube", price=price
    )
    return result.listing

@pytest.mark.asyncio
async def test_upload_creates_pending_listing(workflow, artist, asset_store):
    listing = await upload(workflow, artist)

    assert listing['status'] == STATUS_PENDING
    assert listing['title'] == "Cube"
    assert listing['price'] == 9.99
    assert listing['creator'] == {'_id': artist['id'], 'username': 'alice'}
    assert listing['purchases'] == []
    assert asset_store.exists(listing['fileUrl'])

@pytest.mark.asyncio
async def test_upload_wrong_extension_creates_nothing(workflow, artist, listing_manager, upload_root):
    with pytest.raises(InvalidAssetError):
        await upload(workflow, artist, name="cube.obj")

    assert listing_manager.records == {}
    assert stored_files(upload_root) == []

@pytest.mark.asyncio
@pytest.mark.parametrize("title,price", [
    ("", "9.99"),
    ("Cube", "free"),
    ("Cube", "-1"),
    ("Cube", "nan"),
    ("Cube", "1e309"),
    ("Cube", None),
])
async def test_upload_bad_metadata_removes_file(workflow, artist, listing_manager, upload_root, title, price):
    with pytest.raises(InvalidListingError):
        await upload(workflow, artist, title=title, price=price)

    assert listing_manager.records == {}
    assert stored_files(upload_root) == []

@pytest.mark.asyncio
async def test_upload_store_failure_removes_file(workflow, artist, listing_manager, upload_root):
    listing_manager.fail_create = RuntimeError("connection lost")

    with pytest.raises(RuntimeError):
        await upload(workflow, artist)
    assert stored_files(upload_root) == []

@pytest.mark.asyncio
async def test_approve_notifies_owner(workflow, artist, notification_manager, asset_store):
    listing = await upload(workflow, artist)

    result = await workflow.approve(listing['_id'])

    assert result.listing['status'] == STATUS_APPROVED
    assert result.warnings == []
    assert asset_store.exists(listing['fileUrl'])

    notifications = await notification_manager.list(artist['id'])
    assert len(notifications) == 1
    assert notifications[0]['type'] == TYPE_APPROVAL
    assert notifications[0]['modelTitle'] == "Cube"
    assert notifications[0]['message'] == approval_message("Cube")

@pytest.mark.asyncio
async def test_approve_twice(workflow, artist):
    listing = await upload(workflow, artist)
    await workflow.approve(listing['_id'])

    with pytest.raises(ListingNotFoundError):
        await workflow.approve(listing['_id'])

@pytest.mark.asyncio
async def test_approve_with_notification_failure(workflow, artist, notification_manager, listing_manager):
    listing = await upload(workflow, artist)
    notification_manager.fail = RuntimeError("notifications table unavailable")

    result = await workflow.approve(listing['_id'])

    assert result.warning
    assert (await listing_manager.get(listing['_id']))['status'] == STATUS_APPROVED

@pytest.mark.asyncio
async def test_reject_removes_listing_and_file(workflow, artist, listing_manager, notification_manager, asset_store):
    listing = await upload(workflow, artist)

    result = await workflow.reject(listing['_id'])

    assert result.listing_id == listing['_id']
    assert result.warnings == []
    assert not asset_store.exists(listing['fileUrl'])
    with pytest.raises(ListingNotFoundError):
        await listing_manager.get(listing['_id'])

    notifications = await notification_manager.list(artist['id'])
    assert [n['type'] for n in notifications] == [TYPE_REJECTION]
    assert notifications[0]['message'] == rejection_message("Cube")

@pytest.mark.asyncio
async def test_reject_unknown_listing(workflow):
    with pytest.raises(ListingNotFoundError):
        await workflow.reject("00000000-0000-0000-0000-000000000000")

@pytest.mark.asyncio
async def test_reject_with_missing_file(workflow, artist, asset_store, listing_manager):
    listing = await upload(workflow, artist)
    await asset_store.delete(listing['fileUrl'])

    result = await workflow.reject(listing['_id'])

    assert result.warnings == []
    assert listing_manager.records == {}

@pytest.mark.asyncio
async def test_reject_with_undeletable_file(listing_manager, notification_manager, asset_store, artist):
    workflow = ModerationWorkflow(listing_manager, notification_manager, asset_store)
    listing = await upload(workflow, artist)

    workflow.assets = BrokenAssetStore(asset_store)
    result = await workflow.reject(listing['_id'])

    assert result.warning
    assert listing_manager.records == {}
    assert len(await notification_manager.list(artist['id'])) == 1

@pytest.mark.asyncio
async def test_reject_with_notification_failure(workflow, artist, notification_manager, listing_manager, asset_store):
    listing = await upload(workflow, artist)
    notification_manager.fail = RuntimeError("notifications table unavailable")

    result = await workflow.reject(listing['_id'])

    assert result.warning
    assert listing_manager.records == {}
    assert not asset_store.exists(listing['fileUrl'])

@pytest.mark.asyncio
async def test_reject_with_record_delete_failure(workflow, artist, listing_manager):
    listing = await upload(workflow, artist)
    listing_manager.fail_delete = RuntimeError("connection lost")

    result = await workflow.reject(listing['_id'])

    assert result.warning
    # The record survives but is hidden and can't be moderated again
    assert listing['_id'] in listing_manager.records
    assert await listing_manager.list_by_status(STATUS_PENDING) == []
    with pytest.raises(ListingNotFoundError):
        await workflow.approve(listing['_id'])

@pytest.mark.asyncio
async def test_concurrent_approve_and_reject(workflow, artist, listing_manager, notification_manager, asset_store):
    listing = await upload(workflow, artist)

    outcomes = await asyncio.gather(
        workflow.approve(listing['_id']),
        workflow.reject(listing['_id']),
        return_exceptions=True
    )

    failures = [o for o in outcomes if isinstance(o, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], ListingNotFoundError)

    notifications = await notification_manager.list(artist['id'])
    assert len(notifications) == 1

    if isinstance(outcomes[1], Exception):
        # Approval won
        assert (await listing_manager.get(listing['_id']))['status'] == STATUS_APPROVED
        assert asset_store.exists(listing['fileUrl'])
        assert notifications[0]['type'] == TYPE_APPROVAL
    else:
        assert listing_manager.records == {}
        assert not asset_store.exists(listing['fileUrl'])
        assert notifications[0]['type'] == TYPE_REJECTION

@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["pending", "deleted", "APPROVED", ""])
async def test_set_status_rejects_unknown_status(workflow, artist, status):
    listing = await upload(workflow, artist)
    with pytest.raises(InvalidStatusError):
        await workflow.set_status(listing['_id'], status)

@pytest.mark.asyncio
async def test_set_status_dispatches(workflow, artist, listing_manager):
    approved = await upload(workflow, artist, title="Sphere")
    rejected = await upload(workflow, artist, title="Cube")

    await workflow.set_status(approved['_id'], "approved")
    await workflow.set_status(rejected['_id'], "rejected")

    remaining = await listing_manager.list_all()
    assert [m['title'] for m in remaining] == ["Sphere"]

@pytest.mark.asyncio
async def test_owner_delete(workflow, artist, listing_manager, asset_store):
    listing = await upload(workflow, artist)

    result = await workflow.owner_delete(artist, listing['_id'])

    assert result.listing_id == listing['_id']
    assert listing_manager.records == {}
    assert not asset_store.exists(listing['fileUrl'])

@pytest.mark.asyncio
async def test_owner_delete_by_someone_else(workflow, artist, buyer, listing_manager, asset_store):
    listing = await upload(workflow, artist)

    with pytest.raises(ForbiddenError):
        await workflow.owner_delete(buyer, listing['_id'])

    assert listing['_id'] in listing_manager.records
    assert asset_store.exists(listing['fileUrl'])

@pytest.mark.asyncio
async def test_owner_delete_with_missing_file(workflow, artist, listing_manager, asset_store):
    listing = await upload(workflow, artist)
    await asset_store.delete(listing['fileUrl'])

    result = await workflow.owner_delete(artist, listing['_id'])

    assert result.warnings == []
    assert listing_manager.records == {}
