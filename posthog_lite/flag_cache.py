from datetime import datetime
from types import MappingProxyType
from typing import Iterable, Mapping, NamedTuple, Optional

from dateutil.tz import tzutc

from posthog_lite.types import FlagDefinition


class _Snapshot(NamedTuple):
    definitions: Mapping[str, FlagDefinition]
    loaded: bool
    last_loaded_at: Optional[datetime]


_EMPTY = _Snapshot(MappingProxyType({}), False, None)


class FlagCache:
    """The last successfully fetched flag definitions.

    Readers take one snapshot reference and work from it; writers build a new
    snapshot and swap the reference, so a reader never sees a half-applied
    refresh.
    """

    def __init__(self):
        self._snapshot = _EMPTY

    def replace(self, definitions: Iterable[FlagDefinition]):
        by_key = {definition.key: definition for definition in definitions}
        self._snapshot = _Snapshot(
            MappingProxyType(by_key), True, datetime.now(tz=tzutc())
        )

    def invalidate(self):
        """Mark the cache as needing a reload; the current definitions stay readable."""
        self._snapshot = self._snapshot._replace(loaded=False)

    def snapshot(self) -> _Snapshot:
        return self._snapshot

    def get(self, key) -> Optional[FlagDefinition]:
        return self._snapshot.definitions.get(key)

    @property
    def definitions(self) -> Mapping[str, FlagDefinition]:
        return self._snapshot.definitions

    @property
    def loaded(self) -> bool:
        return self._snapshot.loaded

    @property
    def last_loaded_at(self) -> Optional[datetime]:
        return self._snapshot.last_loaded_at
