"""Startup loading of all records and the in-memory directory built from them."""

import logging
from dataclasses import dataclass, field

from .core.model import ToiletId, ToiletRecord, VoteKind, VoteResult
from .core.ports import BlobStore, RecordCodec
from .core.rating import VoteState
from .core.service import RECORD_SUFFIX, ToiletRepository
from .errors import MalformedRecord, NotFound

logger = logging.getLogger(__name__)


@dataclass
class SkippedRecord:
    name: str
    reason: str


@dataclass
class LoadResult:
    records: list[ToiletRecord] = field(default_factory=list)
    skipped: list[SkippedRecord] = field(default_factory=list)


def _sort_key(record: ToiletRecord) -> tuple[int, int | str]:
    return (0, int(record.id)) if record.id.isdigit() else (1, record.id)


async def load_records(store: BlobStore, codec: RecordCodec, records_dir: str) -> LoadResult:
    """
    Read and decode every record blob under records_dir.

    Blobs that fail to decode are logged and reported in `skipped`; they
    never abort the load.
    """
    result = LoadResult()
    records_dir = records_dir.strip("/")
    for entry in await store.list(records_dir):
        if not entry.is_file or not entry.name.endswith(RECORD_SUFFIX):
            continue
        path = f"{records_dir}/{entry.name}"
        try:
            blob = await store.get(path)
            record = codec.decode(blob.content.decode("utf-8"))
        except NotFound:
            # deleted between list and get
            continue
        except (MalformedRecord, UnicodeDecodeError) as e:
            logger.warning("Skipping %s: %s", path, e)
            result.skipped.append(SkippedRecord(name=entry.name, reason=str(e)))
            continue
        result.records.append(record)

    result.records.sort(key=_sort_key)
    logger.info("Loaded %d toilet(s), skipped %d", len(result.records), len(result.skipped))
    return result


class ToiletDirectory:
    """
    The browser-session view of all toilets: records keyed by id plus the
    session's own votes.
    """

    def __init__(self, records: list[ToiletRecord] | None = None):
        self._records: dict[ToiletId, ToiletRecord] = {}
        self.votes = VoteState()
        for record in records or []:
            self.merge(record)

    @classmethod
    async def load(cls, repository: ToiletRepository) -> "ToiletDirectory":
        result = await load_records(repository.store, repository.codec, repository.records_dir)
        return cls(result.records)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, toilet_id: object) -> bool:
        return toilet_id in self._records

    def get(self, toilet_id: ToiletId) -> ToiletRecord | None:
        return self._records.get(toilet_id)

    def all(self) -> list[ToiletRecord]:
        return sorted(self._records.values(), key=_sort_key)

    def merge(self, record: ToiletRecord) -> None:
        """Replace the record with the same id, or add it."""
        self._records[record.id] = record

    def remove(self, toilet_id: ToiletId) -> None:
        self._records.pop(toilet_id, None)
        self.votes.forget(toilet_id)

    async def vote(
        self, repository: ToiletRepository, toilet_id: ToiletId, vote: VoteKind
    ) -> VoteResult | None:
        """
        Cast a vote from this session.

        Returns None without calling the repository when the session already
        voted this way.
        """
        prior = self.votes.prior(toilet_id)
        if prior == vote:
            return None
        result = await repository.vote(toilet_id, vote, prior)
        self.votes.record(toilet_id, vote)
        self.merge(result.record)
        return result
