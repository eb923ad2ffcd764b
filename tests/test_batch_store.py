import asyncio

import pytest

from fakes import make_image_bytes
from models.upload_batch import UploadState
from services.batch_store import BatchStore
from services.image_resizer import ImageResizer
from services.notifications import NotificationChannel


def selection(count, width=100):
    return [(make_image_bytes(width, 50), f"{i}.jpg", "image/jpeg") for i in range(count)]


@pytest.mark.asyncio
async def test_select_truncates_to_remaining_slots():
    store = BatchStore()
    batch, added = await store.select("u1", selection(3), remaining_slots=2)
    assert [f.name for f in added] == ["0.jpg", "1.jpg"]

    _, more = await store.select("u1", selection(1), remaining_slots=2)
    assert more == []
    assert len(batch.files) == 2


@pytest.mark.asyncio
async def test_select_resizes_wide_images():
    store = BatchStore()
    _, added = await store.select("u1", selection(1, width=2500), remaining_slots=60)
    assert added[0].was_compressed
    assert added[0].resized


@pytest.mark.asyncio
async def test_remove_by_index():
    store = BatchStore()
    await store.select("u1", selection(3), remaining_slots=60)
    removed = store.remove("u1", 1)
    assert removed.name == "1.jpg"
    assert [f.name for f in store.get("u1").files] == ["0.jpg", "2.jpg"]
    with pytest.raises(IndexError):
        store.remove("u1", 5)


@pytest.mark.asyncio
async def test_remove_rejected_while_uploading():
    store = BatchStore()
    await store.select("u1", selection(1), remaining_slots=60)
    store.get("u1").state = UploadState.UPLOADING
    assert store.is_busy("u1")
    with pytest.raises(RuntimeError):
        store.remove("u1", 0)


def test_batches_are_per_user():
    store = BatchStore()
    store.get("u1").state = UploadState.RESIZING
    assert not store.is_busy("u2")
    store.clear("u1")
    assert store.get("u1").state is UploadState.IDLE


def test_notification_keys_replace_earlier_notices():
    channel = NotificationChannel()
    channel.info("Analyzing your sample...", key="analyzing")
    channel.error("Upload failed")
    channel.success("Analysis complete", key="analyzing")
    assert [n.message for n in channel.notices] == ["Upload failed", "Analysis complete"]


class GatedResizer(ImageResizer):
    """Pause inside `resize_many` until `release` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def resize_many(self, files):
        self.started.set()
        await self.release.wait()
        return await super().resize_many(files)


@pytest.mark.asyncio
async def test_batch_is_busy_while_selection_resizes():
    resizer = GatedResizer()
    store = BatchStore(resizer)
    resizer.release.set()
    await store.select("u1", selection(1), remaining_slots=60)

    resizer.release.clear()
    resizer.started.clear()
    pending = asyncio.create_task(store.select("u1", [(make_image_bytes(64, 48), "b.jpg", "image/jpeg")], remaining_slots=60))
    await resizer.started.wait()

    # A commit checks this before snapshotting the batch.
    assert store.is_busy("u1")
    with pytest.raises(RuntimeError):
        await store.select("u1", selection(1), remaining_slots=60)

    resizer.release.set()
    batch, added = await pending
    assert [f.name for f in added] == ["b.jpg"]
    assert [f.name for f in batch.files] == ["0.jpg", "b.jpg"]
    assert batch.state is UploadState.IDLE
    assert not store.is_busy("u1")


@pytest.mark.asyncio
async def test_select_rejected_while_committing():
    store = BatchStore()
    await store.select("u1", selection(1), remaining_slots=60)
    store.get("u1").state = UploadState.UPLOADING
    with pytest.raises(RuntimeError):
        await store.select("u1", selection(1), remaining_slots=60)
    assert len(store.get("u1").files) == 1


@pytest.mark.asyncio
async def test_failed_resize_restores_state():
    store = BatchStore()
    store.get("u1").state = UploadState.ERROR
    with pytest.raises(ValueError):
        await store.select("u1", [(b"not an image", "bad.jpg", "image/jpeg")], remaining_slots=60)
    assert store.get("u1").state is UploadState.ERROR
