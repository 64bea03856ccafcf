"""Valkey (Redis protocol) storage backend."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional

from glide import (
    ExpirySet,
    ExpiryType,
    GlideClient,
    GlideClientConfiguration,
    GlideError,
    NodeAddress,
    Script,
)

from icaowx.config import StorageConfig
from icaowx.storage import Keyspace, LocationRecord, Storage, StorageError, check_report_keyspace

logger = logging.getLogger(__name__)

KEY_PREFIX = "wx:icao:"

LOC_FIELD_NAME = "name"
LOC_FIELD_CITY = "city"
LOC_FIELD_COUNTRY_CODE = "country"
LOC_FIELD_LATITUDE = "lat"
LOC_FIELD_LONGITUDE = "lon"
LOC_FIELD_ALTITUDE_FEET = "alt_ft"

# KEYS[1] location key; ARGV alternating field names and values.
_CREATE_IF_ABSENT = Script(
    "if redis.call('EXISTS', KEYS[1]) == 1 then return 0 end "
    "redis.call('HSET', KEYS[1], unpack(ARGV)) "
    "return 1"
)


def make_key(keyspace: Keyspace, code: str) -> str:
    """Build the backend key for a location code, e.g. wx:icao:metar:UKLL."""
    return f"{KEY_PREFIX}{keyspace.value}:{code}"


def _decode(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def _record_from_hash(code: str, fields: Dict) -> LocationRecord:
    s = {_decode(k): _decode(v) for k, v in fields.items()}
    try:
        return LocationRecord(
            location=code,
            name=s.get(LOC_FIELD_NAME, ""),
            city=s.get(LOC_FIELD_CITY, ""),
            country_code=s.get(LOC_FIELD_COUNTRY_CODE, ""),
            latitude=float(s.get(LOC_FIELD_LATITUDE, "")),
            longitude=float(s.get(LOC_FIELD_LONGITUDE, "")),
            altitude_feet=int(s.get(LOC_FIELD_ALTITUDE_FEET, "")),
        )
    except ValueError as e:
        raise StorageError(f"Malformed location data for {code}: {e}") from e


class ValkeyStorage(Storage):
    """
    Storage backed by a Valkey or Redis server.

    Key layout:
        wx:icao:loc:{CODE}    hash of location metadata, no expiry
        wx:icao:metar:{CODE}  "{type} {raw_text}" with expiry
        wx:icao:taf:{CODE}    raw TAF with expiry

    A single multiplexed client is shared by all callers. The number of
    commands in flight is capped by max_active; each command holds one slot
    for its duration.
    """

    def __init__(self, client: GlideClient, max_active: int):
        self._client = client
        self._slots = asyncio.Semaphore(max_active)

    @classmethod
    async def create(cls, config: StorageConfig) -> "ValkeyStorage":
        """Connect to the server described by config."""
        glide_config = GlideClientConfiguration(
            [NodeAddress(config.host, config.port)],
            database_id=config.database_id,
            request_timeout=config.request_timeout_ms,
        )
        try:
            client = await GlideClient.create(glide_config)
        except GlideError as e:
            raise StorageError(f"Unable to connect to {config.host}:{config.port}: {e}") from e
        logger.info(f"Connected to storage at {config.host}:{config.port}")
        return cls(client, config.max_active)

    @asynccontextmanager
    async def _slot(self, operation: str) -> AsyncIterator[GlideClient]:
        async with self._slots:
            try:
                yield self._client
            except GlideError as e:
                raise StorageError(f"{operation} failed: {e}") from e

    async def get_location(self, code: str) -> Optional[LocationRecord]:
        async with self._slot("HGETALL") as client:
            fields = await client.hgetall(make_key(Keyspace.LOCATION, code))
        if not fields:
            return None
        return _record_from_hash(code, fields)

    async def batch_get_locations(self, codes: List[str]) -> List[Optional[LocationRecord]]:
        return [await self.get_location(code) for code in codes]

    async def batch_get(self, keyspace: Keyspace, codes: List[str]) -> List[str]:
        check_report_keyspace(keyspace)
        if not codes:
            return []
        keys = [make_key(keyspace, code) for code in codes]
        async with self._slot("MGET") as client:
            values = await client.mget(keys)
        return [_decode(v) for v in values]

    async def create_location_if_absent(self, record: LocationRecord) -> bool:
        args = [
            LOC_FIELD_NAME, record.name,
            LOC_FIELD_CITY, record.city,
            LOC_FIELD_COUNTRY_CODE, record.country_code,
            LOC_FIELD_LATITUDE, repr(record.latitude),
            LOC_FIELD_LONGITUDE, repr(record.longitude),
            LOC_FIELD_ALTITUDE_FEET, str(record.altitude_feet),
        ]
        async with self._slot("create location") as client:
            created = await client.invoke_script(
                _CREATE_IF_ABSENT,
                keys=[make_key(Keyspace.LOCATION, record.location)],
                args=args,
            )
        return created == 1

    async def upsert_with_ttl(self, keyspace: Keyspace, code: str, value: str, ttl_seconds: int) -> None:
        check_report_keyspace(keyspace)
        key = make_key(keyspace, code)
        if ttl_seconds <= 0:
            # Already expired: make sure no stale value survives.
            async with self._slot("DEL") as client:
                await client.delete([key])
            return
        async with self._slot("SET") as client:
            await client.set(key, value, expiry=ExpirySet(ExpiryType.SEC, ttl_seconds))

    async def exists(self, code: str) -> bool:
        async with self._slot("EXISTS") as client:
            count = await client.exists([make_key(Keyspace.LOCATION, code)])
        return count > 0

    async def close(self) -> None:
        await self._client.close()
        logger.info("Storage connection closed")
