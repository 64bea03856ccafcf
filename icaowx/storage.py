"""Storage abstraction and the in-memory implementation."""

import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel


class StorageError(Exception):
    """Raised when the storage backend fails."""


class Keyspace(str, Enum):
    """Independent keyspaces, all keyed by ICAO location code."""
    LOCATION = "loc"
    METAR = "metar"
    TAF = "taf"


class LocationRecord(BaseModel):
    """Static metadata of an ICAO location."""
    location: str
    name: str = ""
    city: str = ""
    country_code: str = ""
    latitude: float = 0.0
    longitude: float = 0.0
    altitude_feet: int = 0


class Storage(ABC):
    """
    Key-value storage for location metadata, METARs and TAFs.

    Implementations do not validate location codes. Reads across keyspaces
    are independent; no call spans more than one keyspace atomically.
    """

    @abstractmethod
    async def get_location(self, code: str) -> Optional[LocationRecord]:
        """Get location metadata, or None if the location is unknown."""
        pass

    @abstractmethod
    async def batch_get_locations(self, codes: List[str]) -> List[Optional[LocationRecord]]:
        """
        Get location metadata for several codes.

        Returns:
            One entry per code, in the same order; None for unknown codes
        """
        pass

    @abstractmethod
    async def batch_get(self, keyspace: Keyspace, codes: List[str]) -> List[str]:
        """
        Get report strings for several codes from the METAR or TAF keyspace.

        Args:
            keyspace: Keyspace.METAR or Keyspace.TAF
            codes: Location codes

        Returns:
            One string per code, in the same order; "" for missing keys
        """
        pass

    @abstractmethod
    async def create_location_if_absent(self, record: LocationRecord) -> bool:
        """
        Store location metadata unless the location already exists.

        Returns:
            True if the record was created, False if it already existed
        """
        pass

    @abstractmethod
    async def upsert_with_ttl(self, keyspace: Keyspace, code: str, value: str, ttl_seconds: int) -> None:
        """
        Set or replace a report string that expires after ttl_seconds.

        A non-positive ttl_seconds expires the value immediately.
        """
        pass

    @abstractmethod
    async def exists(self, code: str) -> bool:
        """Check whether location metadata exists for a code."""
        pass

    async def close(self) -> None:
        """Release backend resources."""
        pass


def check_report_keyspace(keyspace: Keyspace) -> None:
    if keyspace not in (Keyspace.METAR, Keyspace.TAF):
        raise ValueError(f"Keyspace {keyspace.value} does not hold report strings")


class MemoryStorage(Storage):
    """
    In-process storage with the same contract as the Valkey backend.

    Expired values are dropped lazily on read.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._locations: Dict[str, LocationRecord] = {}
        self._reports: Dict[Keyspace, Dict[str, Tuple[str, float]]] = {
            Keyspace.METAR: {},
            Keyspace.TAF: {},
        }

    def _get_report(self, keyspace: Keyspace, code: str) -> str:
        entries = self._reports[keyspace]
        entry = entries.get(code)
        if entry is None:
            return ""
        value, expires_at = entry
        if self._clock() >= expires_at:
            del entries[code]
            return ""
        return value

    async def get_location(self, code: str) -> Optional[LocationRecord]:
        record = self._locations.get(code)
        return record.model_copy() if record is not None else None

    async def batch_get_locations(self, codes: List[str]) -> List[Optional[LocationRecord]]:
        return [await self.get_location(code) for code in codes]

    async def batch_get(self, keyspace: Keyspace, codes: List[str]) -> List[str]:
        check_report_keyspace(keyspace)
        return [self._get_report(keyspace, code) for code in codes]

    async def create_location_if_absent(self, record: LocationRecord) -> bool:
        if record.location in self._locations:
            return False
        self._locations[record.location] = record.model_copy()
        return True

    async def upsert_with_ttl(self, keyspace: Keyspace, code: str, value: str, ttl_seconds: int) -> None:
        check_report_keyspace(keyspace)
        if ttl_seconds <= 0:
            self._reports[keyspace].pop(code, None)
            return
        self._reports[keyspace][code] = (value, self._clock() + ttl_seconds)

    async def exists(self, code: str) -> bool:
        return code in self._locations


async def open_storage(config) -> Storage:
    """Create the storage backend selected by a StorageConfig."""
    if config.backend == "memory":
        return MemoryStorage()
    from icaowx.valkey_storage import ValkeyStorage
    return await ValkeyStorage.create(config)
