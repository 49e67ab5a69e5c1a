"""Query key domain entity."""

from dataclasses import dataclass


@dataclass(frozen=True)
class QueryKey:
    """Canonical identifier of a cached collection.

    Equality and hashing are structural (segment-wise), so two operations that
    build the same segments address the same cache entry.

    Attributes:
        segments: Ordered, non-empty tuple of string segments
    """

    segments: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.segments:
            raise ValueError("QueryKey needs at least one segment")
        for segment in self.segments:
            if not isinstance(segment, str) or not segment or "/" in segment:
                raise ValueError(f"Invalid query key segment: {segment!r}")

    @classmethod
    def of(cls, *segments: str) -> "QueryKey":
        """Build a key from positional segments, e.g. ``QueryKey.of("entries", "list")``."""
        return cls(tuple(segments))

    @classmethod
    def parse(cls, value: str) -> "QueryKey":
        """Build a key from its ``/``-joined string form."""
        return cls(tuple(value.strip("/").split("/")))

    def starts_with(self, prefix: "QueryKey") -> bool:
        """Check whether ``prefix`` is a leading run of this key's segments."""
        return self.segments[: len(prefix.segments)] == prefix.segments

    def to_list(self) -> list[str]:
        return list(self.segments)

    def __str__(self) -> str:
        return "/".join(self.segments)


class QueryKeys:
    """Central query key definitions."""

    ENTRIES = QueryKey.of("entries")
    ENTRIES_LIST = QueryKey.of("entries", "list")
    FILES = QueryKey.of("files")
    FILES_LIST = QueryKey.of("files", "list")
