"""Like/dislike rating rules and id allocation."""

from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from .model import ToiletId, ToiletRecord, VoteKind

LIKE_WEIGHT = 5
DISLIKE_WEIGHT = 1


def utc_now() -> str:
    """ISO-8601 timestamp in the format the browser client writes (ms precision, Z suffix)."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def compute_rating(likes: int, dislikes: int) -> float:
    """
    Aggregate rating on a 1-5 scale, rounded half-up to one decimal.

    A like counts as 5 stars and a dislike as 1 star; a record without
    any votes rates 0.

        >>> compute_rating(3, 1)
        4.0
        >>> compute_rating(0, 0)
        0.0
    """
    total = likes + dislikes
    if total <= 0:
        return 0.0
    raw = (likes * LIKE_WEIGHT + dislikes * DISLIKE_WEIGHT) / total
    return float(Decimal(repr(raw)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def apply_vote(
    record: ToiletRecord,
    vote: VoteKind,
    prior: VoteKind | None = None,
    now: str | None = None,
) -> ToiletRecord:
    """
    Apply one vote to a record and return the updated copy.

    - prior == vote: the record is returned unchanged (same object).
    - prior is None: the matching counter goes up by one.
    - prior is the opposite vote: one unit moves from the old counter
      (floored at zero) to the new one, so the vote total is unchanged.
    """
    if vote not in ("like", "dislike"):
        raise ValueError(f"Unknown vote: {vote!r}")
    if prior is not None and prior not in ("like", "dislike"):
        raise ValueError(f"Unknown prior vote: {prior!r}")
    if prior == vote:
        return record

    likes, dislikes = record.likes, record.dislikes
    if prior == "like":
        likes = max(likes - 1, 0)
    elif prior == "dislike":
        dislikes = max(dislikes - 1, 0)

    if vote == "like":
        likes += 1
    else:
        dislikes += 1

    return replace(
        record,
        likes=likes,
        dislikes=dislikes,
        rating=compute_rating(likes, dislikes),
        images=list(record.images),
        updated_at=now or utc_now(),
    )


def allocate_next_id(existing_ids: Iterable[int]) -> int:
    """
    Smallest positive integer not already in use.

    Ids freed by deletion are reused:

        >>> allocate_next_id({1, 3})
        2
        >>> allocate_next_id({1, 2, 3})
        4
    """
    candidate = 1
    for existing in sorted(set(existing_ids)):
        if existing < candidate:
            continue
        if existing != candidate:
            break
        candidate += 1
    return candidate


class VoteState:
    """
    Per-session memory of the last vote cast on each record.

    Never persisted; it only stops one session from voting twice in the
    same direction and supplies the prior vote for a switch.
    """

    def __init__(self) -> None:
        self._votes: dict[ToiletId, VoteKind] = {}

    def prior(self, toilet_id: ToiletId) -> VoteKind | None:
        return self._votes.get(toilet_id)

    def record(self, toilet_id: ToiletId, vote: VoteKind) -> None:
        self._votes[toilet_id] = vote

    def forget(self, toilet_id: ToiletId) -> None:
        self._votes.pop(toilet_id, None)

    def __contains__(self, toilet_id: object) -> bool:
        return toilet_id in self._votes

    def __len__(self) -> int:
        return len(self._votes)
