from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Final, Iterator, Optional
from urllib.parse import quote


class ItemType(Enum):
    SONG = 'song'
    ALBUM = 'album'
    PLAYLIST = 'playlist'
    MUSIC_VIDEO = 'musicVideo'
    STATION = 'station'

    @property
    def tag(self) -> str:
        """Path segment the catalog service expects for this item type."""
        return ITEM_TYPE_TAGS[self]


ITEM_TYPE_TAGS: Final[dict[ItemType, str]] = {
    ItemType.SONG: 'songs',
    ItemType.ALBUM: 'albums',
    ItemType.PLAYLIST: 'playlists',
    ItemType.MUSIC_VIDEO: 'music-videos',
    ItemType.STATION: 'stations',
}


class RatingValue(Enum):
    LIKE = 1
    DISLIKE = -1
    NEUTRAL = 0

    @classmethod
    def parse(cls, raw: Any) -> 'RatingValue':
        """Accept the service's integer value or its word form (`like`, `dislike`, `neutral`)."""
        if isinstance(raw, bool):
            raise ValueError(f"Unsupported rating value: {raw!r}")
        if isinstance(raw, int):
            return cls(raw)
        if isinstance(raw, str) and raw.upper() in cls.__members__:
            return cls[raw.upper()]
        raise ValueError(f"Unsupported rating value: {raw!r}")


@dataclass(frozen=True)
class EndpointReference:
    host: str
    path: str
    ids: tuple[str, ...]

    @property
    def query_ids(self) -> str:
        return ','.join(quote(item_id, safe='') for item_id in self.ids)

    @property
    def url(self) -> str:
        return f"https://{self.host}/{self.path}?ids={self.query_ids}"

    def __str__(self) -> str:
        return self.url


@dataclass(frozen=True)
class RatingRecord:
    id: str
    type: str
    value: RatingValue
    href: Optional[str] = None
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass
class RatingsResponse:
    """Ratings keyed by item id. Items without a rating are simply missing.

    Behaves like a read-only mapping: `in` and iteration work on item ids, `records()` gives the ratings.
    """

    ratings: dict[str, RatingRecord] = field(default_factory=dict)

    def get(self, item_id: str) -> Optional[RatingRecord]:
        return self.ratings.get(item_id)

    def ids(self) -> list[str]:
        return list(self.ratings)

    def records(self) -> list[RatingRecord]:
        return list(self.ratings.values())

    def __contains__(self, item_id: object) -> bool:
        return item_id in self.ratings

    def __len__(self) -> int:
        return len(self.ratings)

    def __iter__(self) -> Iterator[str]:
        return iter(self.ratings)
