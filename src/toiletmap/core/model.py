from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

ToiletId = str
VoteKind = Literal["like", "dislike"]

VOTE_KINDS: tuple[str, ...] = ("like", "dislike")


@dataclass
class ToiletRecord:
    id: ToiletId  # numeric-looking, e.g. "12"
    name: str
    address: str
    latitude: float
    longitude: float
    is_free: bool
    created_at: str  # ISO-8601, set once
    updated_at: str  # ISO-8601, refreshed on every mutation
    description: str = ""
    rating: float = 0.0
    likes: int = 0
    dislikes: int = 0
    images: list[str] = field(default_factory=list)

    @property
    def total_ratings(self) -> int:
        return self.likes + self.dislikes

    def to_dict(self) -> dict[str, Any]:
        """Wire representation, keyed the way the browser client expects."""
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "description": self.description,
            "isFree": self.is_free,
            "rating": self.rating,
            "totalRatings": self.total_ratings,
            "likes": self.likes,
            "dislikes": self.dislikes,
            "images": list(self.images),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass
class NewToilet:
    """Input for creating a record."""
    name: str
    address: str
    latitude: float | None
    longitude: float | None
    description: str = ""
    is_free: bool = True
    image_data: str | None = None  # data URL, e.g. "data:image/jpeg;base64,..."


@dataclass
class ToiletUpdate:
    """
    Partial update of the user-editable fields. None means "leave as is".
    Coordinates, counters and timestamps are not editable here.
    """
    name: str | None = None
    address: str | None = None
    description: str | None = None
    is_free: bool | None = None
    image_data: str | None = None
    removed_images: tuple[int, ...] = ()


@dataclass
class CreateResult:
    record: ToiletRecord
    image_url: str = ""
    image_error: str | None = None


@dataclass
class UpdateResult:
    record: ToiletRecord
    new_image_url: str = ""
    image_error: str | None = None


@dataclass
class VoteResult:
    record: ToiletRecord
    changed: bool
    commit: dict[str, Any] | None = None
