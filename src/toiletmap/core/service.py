"""Toilet repository service: record lifecycle on top of a versioned blob store."""

import logging
import math
import time
from collections.abc import Callable
from dataclasses import replace

from ..config import ImageConfig, StoreConfig
from ..errors import (
    ConflictError,
    ImageTooLarge,
    MalformedRecord,
    NotFound,
    StoreError,
    ValidationError,
)
from ..images import ImagePayload, load_image
from .model import (
    CreateResult,
    NewToilet,
    ToiletId,
    ToiletRecord,
    ToiletUpdate,
    UpdateResult,
    VoteKind,
    VoteResult,
)
from .ports import Blob, BlobStore, RecordCodec
from .rating import allocate_next_id, apply_vote, utc_now

logger = logging.getLogger(__name__)

RECORD_SUFFIX = ".md"


def _millis() -> int:
    return int(time.time() * 1000)


def _require_text(field_name: str, value: str | None) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"Missing required field: {field_name}")
    return str(value)


def _require_coordinate(field_name: str, value: float | None, bound: float) -> float:
    if value is None or isinstance(value, bool):
        raise ValidationError(f"Missing required field: {field_name}")
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{field_name} must be a number") from e
    if not math.isfinite(number) or abs(number) > bound:
        raise ValidationError(f"{field_name} out of range: {value}")
    return number


class ToiletRepository:
    """
    Create, edit, vote on and delete toilet records.

    Each record is one blob at "<records_dir>/<id>.md". Writes to an
    existing record always carry the revision token from the read that
    preceded them; a concurrent writer therefore surfaces as ConflictError,
    which is left to the caller to retry.
    """

    def __init__(
        self,
        store: BlobStore,
        codec: RecordCodec,
        store_config: StoreConfig,
        image_config: ImageConfig | None = None,
        now: Callable[[], str] = utc_now,
        millis: Callable[[], int] = _millis,
    ):
        self.store = store
        self.codec = codec
        self.records_dir = store_config.records_dir.strip("/")
        self.images_dir = store_config.images_dir.strip("/")
        self.upload_timeout = store_config.upload_timeout
        self.max_image_bytes = (image_config or ImageConfig()).max_bytes
        self._now = now
        self._millis = millis

    def record_path(self, toilet_id: ToiletId) -> str:
        toilet_id = _require_text("toiletId", toilet_id).strip()
        if "/" in toilet_id or toilet_id in (".", ".."):
            raise ValidationError(f"Invalid toilet id: {toilet_id}")
        return f"{self.records_dir}/{toilet_id}{RECORD_SUFFIX}"

    def image_path(self, filename: str) -> str:
        return f"{self.images_dir}/{filename}"

    async def list_ids(self) -> set[int]:
        """Numeric ids of all stored records; non-numeric file names are ignored."""
        ids = set()
        for entry in await self.store.list(self.records_dir):
            if not entry.is_file or not entry.name.endswith(RECORD_SUFFIX):
                continue
            stem = entry.name[: -len(RECORD_SUFFIX)]
            if stem.isdigit() and int(stem) > 0:
                ids.add(int(stem))
        return ids

    def _decode(self, path: str, blob: Blob) -> ToiletRecord:
        try:
            text = blob.content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedRecord(f"{path} is not valid UTF-8: {e}") from e
        return self.codec.decode(text)

    async def get(self, toilet_id: ToiletId) -> ToiletRecord:
        path = self.record_path(toilet_id)
        return self._decode(path, await self.store.get(path))

    async def create(self, new: NewToilet) -> CreateResult:
        """
        Allocate an id and write a fresh record.

        With an image the write sequence is: record, image, record again
        with the image URL. Only the first write is required; if either of
        the later ones fails the record stands without its image and the
        failure is returned in image_error.
        """
        name = _require_text("name", new.name)
        address = _require_text("address", new.address)
        latitude = _require_coordinate("latitude", new.latitude, 90.0)
        longitude = _require_coordinate("longitude", new.longitude, 180.0)

        payload: ImagePayload | None = None
        image_error: str | None = None
        if new.image_data:
            # ImageTooLarge aborts before anything is written
            try:
                payload = load_image(new.image_data, self.max_image_bytes)
            except ValidationError as e:
                logger.warning("Ignoring unreadable image for new toilet %r: %s", name, e)
                image_error = str(e)

        new_id = str(allocate_next_id(await self.list_ids()))
        timestamp = self._now()
        record = ToiletRecord(
            id=new_id,
            name=name,
            address=address,
            latitude=latitude,
            longitude=longitude,
            description=new.description or "",
            is_free=bool(new.is_free),
            rating=0.0,
            likes=0,
            dislikes=0,
            images=[],
            created_at=timestamp,
            updated_at=timestamp,
        )
        path = self.record_path(new_id)
        written = await self.store.put(
            path, self.codec.encode(record).encode("utf-8"), None, f"Add new toilet: {name}"
        )
        logger.info("Created toilet %s (%s)", new_id, name)

        if payload is None:
            return CreateResult(record=record, image_error=image_error)
        return await self._attach_image(record, written.revision, payload)

    async def _attach_image(
        self, record: ToiletRecord, revision: str, payload: ImagePayload
    ) -> CreateResult:
        filename = f"toilet-{record.id}-{self._millis()}.jpg"
        image_path = self.image_path(filename)
        try:
            await self.store.put(
                image_path,
                payload.data,
                None,
                f"Add image for toilet: {record.name}",
                timeout=self.upload_timeout,
            )
        except (StoreError, ConflictError) as e:
            logger.error("Failed to upload image for toilet %s: %s", record.id, e)
            logger.info("Continuing without image due to upload failure")
            return CreateResult(record=record, image_error=str(e))

        url = self.store.public_url(image_path)
        with_image = replace(record, images=[*record.images, url])
        try:
            await self.store.put(
                self.record_path(record.id),
                self.codec.encode(with_image).encode("utf-8"),
                revision,
                f"Update toilet {record.name} with image",
            )
        except (StoreError, ConflictError) as e:
            logger.error("Failed to link image %s to toilet %s: %s", image_path, record.id, e)
            await self._discard_blob(image_path)
            return CreateResult(record=record, image_error=str(e))
        return CreateResult(record=with_image, image_url=url)

    async def _discard_blob(self, path: str) -> None:
        """Best-effort removal of an orphaned blob; safe to repeat."""
        try:
            blob = await self.store.get(path)
            await self.store.delete(path, blob.revision, f"Remove orphaned image {path}")
        except NotFound:
            return
        except (StoreError, ConflictError) as e:
            logger.warning("Leaving orphaned blob %s: %s", path, e)

    async def update(self, toilet_id: ToiletId, update: ToiletUpdate) -> UpdateResult:
        """
        Overwrite the editable fields of a record.

        Removed image indices refer to positions in the stored list; a new
        image is appended after removals. Image failures (including
        ImageTooLarge) do not abort the update.
        """
        if update.name is not None:
            _require_text("name", update.name)
        if update.address is not None:
            _require_text("address", update.address)

        path = self.record_path(toilet_id)
        blob = await self.store.get(path)
        current = self._decode(path, blob)

        removed = set(update.removed_images)
        images = [url for i, url in enumerate(current.images) if i not in removed]
        merged = replace(
            current,
            name=update.name if update.name is not None else current.name,
            address=update.address if update.address is not None else current.address,
            description=(
                update.description if update.description is not None else current.description
            ),
            is_free=update.is_free if update.is_free is not None else current.is_free,
            images=images,
            updated_at=self._now(),
        )

        new_image_url = ""
        new_image_path: str | None = None
        image_error: str | None = None
        if update.image_data:
            try:
                payload = load_image(update.image_data, self.max_image_bytes)
                filename = f"toilet-{current.id}-edit-{self._millis()}.jpg"
                new_image_path = self.image_path(filename)
                await self.store.put(
                    new_image_path,
                    payload.data,
                    None,
                    f"Update image for toilet: {merged.name}",
                    timeout=self.upload_timeout,
                )
            except (ValidationError, ImageTooLarge, StoreError, ConflictError) as e:
                logger.error("Failed to upload new image for toilet %s: %s", current.id, e)
                new_image_path = None
                image_error = str(e)
            else:
                new_image_url = self.store.public_url(new_image_path)
                merged = replace(merged, images=[*merged.images, new_image_url])

        try:
            await self.store.put(
                path,
                self.codec.encode(merged).encode("utf-8"),
                blob.revision,
                f"Update toilet: {merged.name}",
            )
        except ConflictError:
            if new_image_path:
                await self._discard_blob(new_image_path)
            raise
        logger.info("Updated toilet %s", current.id)
        return UpdateResult(record=merged, new_image_url=new_image_url, image_error=image_error)

    async def vote(
        self, toilet_id: ToiletId, vote: VoteKind, prior: VoteKind | None = None
    ) -> VoteResult:
        """Apply a like/dislike; repeating the prior vote writes nothing."""
        if vote not in ("like", "dislike"):
            raise ValidationError(f"Invalid action: {vote}")
        if prior is not None and prior not in ("like", "dislike"):
            raise ValidationError(f"Invalid previous vote: {prior}")

        path = self.record_path(toilet_id)
        blob = await self.store.get(path)
        current = self._decode(path, blob)
        updated = apply_vote(current, vote, prior, now=self._now())
        if updated is current:
            return VoteResult(record=current, changed=False)

        result = await self.store.put(
            path,
            self.codec.encode(updated).encode("utf-8"),
            blob.revision,
            f"Update toilet {current.id}: {vote}",
        )
        logger.info(
            "Toilet %s: %s (likes=%d, dislikes=%d)", current.id, vote, updated.likes, updated.dislikes
        )
        return VoteResult(record=updated, changed=True, commit=result.commit)

    async def delete(self, toilet_id: ToiletId) -> None:
        path = self.record_path(toilet_id)
        blob = await self.store.get(path)
        await self.store.delete(path, blob.revision, f"Delete toilet {toilet_id}")
        logger.info("Deleted toilet %s", toilet_id)
