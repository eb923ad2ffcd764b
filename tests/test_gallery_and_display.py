import pytest
from hypothesis import given, strategies as st

from fakes import FakeObjectStore, FakeRecordStore
from models.image_record import ImageRecord
from models.upload_batch import UserSession
from services.errors import DeleteFailed, SignedUrlFailed, Unauthenticated
from services.gallery_reader import GalleryReader, sort_for_gallery
from services.image_deleter import ImageDeleter
from services.signed_url_cache import SignedUrlCache


def make_record(image_id, user="u1", order=None, created_at=0):
    return ImageRecord(
        id=image_id,
        user_id=user,
        storage_path=f"{user}/{image_id}.jpg",
        image_url=f"https://store.test/{user}/{image_id}.jpg",
        display_order=order,
        created_at=created_at,
    )


records_strategy = st.lists(
    st.tuples(st.one_of(st.none(), st.integers(min_value=0, max_value=5)), st.integers(min_value=0, max_value=10_000)),
    max_size=30,
)


@given(records_strategy)
def test_gallery_order_is_display_order_then_newest(rows):
    ordered = sort_for_gallery(make_record(i, order=o, created_at=c) for i, (o, c) in enumerate(rows))
    for before, after in zip(ordered, ordered[1:]):
        if before.display_order is None:
            assert after.display_order is None
            assert before.created_at >= after.created_at
        elif after.display_order is not None and before.display_order == after.display_order:
            assert before.created_at >= after.created_at
        elif after.display_order is not None:
            assert before.display_order < after.display_order


@pytest.mark.asyncio
async def test_reader_lists_only_own_images_with_quota():
    records = FakeRecordStore()
    records.rows = {1: make_record(1, created_at=5), 2: make_record(2, user="u2"), 3: make_record(3, created_at=9)}
    reader = GalleryReader(UserSession("u1"), records, limit=3)

    images = await reader.list()

    assert [r.id for r in images] == [3, 1]
    assert reader.quota() == {"count": 2, "limit": 3, "remaining": 1}
    assert not reader.at_limit


@pytest.mark.asyncio
async def test_reader_requires_user():
    reader = GalleryReader(UserSession(None), FakeRecordStore())
    with pytest.raises(Unauthenticated):
        await reader.list()
    assert reader.images == []


@pytest.mark.asyncio
async def test_reader_keeps_fetch_error():
    class Broken(FakeRecordStore):
        async def list_for_user(self, user_id):
            raise RuntimeError("database locked")

    reader = GalleryReader(UserSession("u1"), Broken())
    with pytest.raises(RuntimeError):
        await reader.list()
    assert reader.error == "database locked"


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.mark.asyncio
async def test_cached_url_reused_until_close_to_expiry():
    store, clock = FakeObjectStore(), Clock()
    store.objects["u1/1.jpg"] = b"x"
    cache = SignedUrlCache(store, clock=clock)

    first = await cache.get_display_url("u1/1.jpg")
    clock.now = 3000
    assert await cache.get_display_url("u1/1.jpg") == first
    clock.now = 3541
    refreshed = await cache.get_display_url("u1/1.jpg")

    assert refreshed != first
    assert store.sign_count == 2
    assert "ttl=3600" in refreshed


@pytest.mark.asyncio
async def test_url_failure_is_per_image():
    store = FakeObjectStore()
    store.objects["u1/ok.jpg"] = b"x"
    cache = SignedUrlCache(store)

    with pytest.raises(SignedUrlFailed, match="Failed to load image"):
        await cache.get_display_url("u1/missing.jpg")
    assert await cache.get_display_url("u1/ok.jpg")
    assert len(cache) == 1


def test_margin_must_be_shorter_than_ttl():
    with pytest.raises(ValueError):
        SignedUrlCache(FakeObjectStore(), ttl_seconds=60, margin=60)


async def _seeded(store=None):
    store = store or FakeObjectStore()
    records = FakeRecordStore()
    record = await records.insert(make_record(None))
    store.objects[record.storage_path] = b"x"
    return store, records, record


@pytest.mark.asyncio
async def test_delete_removes_object_then_record_and_cached_url():
    store, records, record = await _seeded()
    cache = SignedUrlCache(store)
    await cache.get_display_url(record.storage_path)

    await ImageDeleter(UserSession("u1"), store, records, url_cache=cache).delete(record.id)

    assert store.objects == {}
    assert records.rows == {}
    assert cache.peek(record.storage_path) is None
    assert [c[0] for c in store.calls] == ["signed_url", "delete"]


@pytest.mark.asyncio
async def test_delete_storage_failure_keeps_record():
    store, records, record = await _seeded(FakeObjectStore(fail_delete=True))
    with pytest.raises(DeleteFailed, match="Failed to delete from storage"):
        await ImageDeleter(UserSession("u1"), store, records).delete(record.id)
    assert record.id in records.rows


@pytest.mark.asyncio
async def test_delete_other_users_image_is_not_found():
    store, records, record = await _seeded()
    with pytest.raises(KeyError):
        await ImageDeleter(UserSession("u2"), store, records).delete(record.id)
    assert store.objects


@pytest.mark.asyncio
async def test_delete_requires_user():
    with pytest.raises(Unauthenticated):
        await ImageDeleter(UserSession(None), FakeObjectStore(), FakeRecordStore()).delete(1)
