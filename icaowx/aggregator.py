"""Combining per-location data from the storage keyspaces."""

from typing import Dict, List, Optional

from pydantic import BaseModel

from icaowx.dispatcher import (
    ENDPOINT_ALL,
    ENDPOINT_LOCATION,
    ENDPOINT_METAR,
    ENDPOINT_TAF,
    LocationNotFoundError,
    UnknownEndpointError,
)
from icaowx.storage import Keyspace, LocationRecord, Storage
from icaowx.utils import feet_to_meters


class LocationData(BaseModel):
    """Data returned for one location. Empty and zero fields are left out of the JSON."""
    location: str
    metar: Optional[str] = None
    taf: Optional[str] = None
    name: Optional[str] = None
    city: Optional[str] = None
    country_code: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    altitude_meters: Optional[int] = None
    altitude_feet: Optional[int] = None

    @classmethod
    def from_record(cls, record: LocationRecord) -> "LocationData":
        return cls(
            location=record.location,
            name=record.name or None,
            city=record.city or None,
            country_code=record.country_code or None,
            latitude=record.latitude or None,
            longitude=record.longitude or None,
            altitude_meters=feet_to_meters(record.altitude_feet) or None,
            altitude_feet=record.altitude_feet or None,
        )

    def to_dict(self) -> Dict:
        """Convert to dictionary, omitting unset fields."""
        return self.model_dump(exclude_none=True)


class LocationAggregator:
    """
    Resolves an endpoint and location codes into LocationData.

    Each keyspace is read separately. A refresh that lands between two reads
    can pair a METAR from one ingestion cycle with a TAF from the next.
    """

    def __init__(self, storage: Storage):
        self.storage = storage

    async def query(self, endpoint: str, locations: List[str]) -> List[LocationData]:
        """
        Get data for several locations, skipping unknown ones.

        Args:
            endpoint: One of metar, taf, location, all
            locations: Validated location codes

        Returns:
            LocationData in request order for locations that have data
        """
        if endpoint == ENDPOINT_METAR:
            return await self._reports(Keyspace.METAR, locations)
        if endpoint == ENDPOINT_TAF:
            return await self._reports(Keyspace.TAF, locations)
        if endpoint == ENDPOINT_LOCATION:
            return await self._locations(locations)
        if endpoint == ENDPOINT_ALL:
            return await self._all(locations)
        raise UnknownEndpointError(f"Unknown endpoint {endpoint}")

    async def query_single(self, endpoint: str, location: str) -> LocationData:
        """
        Get data for one location.

        A location known to the system but without current data yields a
        LocationData with only the location code set.

        Raises:
            LocationNotFoundError: If the location is unknown
        """
        result = await self.query(endpoint, [location])
        if result:
            return result[0]
        if not await self.storage.exists(location):
            raise LocationNotFoundError(f"Location {location} is not found")
        return LocationData(location=location)

    async def _reports(self, keyspace: Keyspace, locations: List[str]) -> List[LocationData]:
        values = await self.storage.batch_get(keyspace, locations)
        result = []
        for loc, value in zip(locations, values):
            if value:
                result.append(LocationData(location=loc, **{keyspace.value: value}))
        return result

    async def _locations(self, locations: List[str]) -> List[LocationData]:
        records = await self.storage.batch_get_locations(locations)
        return [LocationData.from_record(r) for r in records if r is not None]

    async def _all(self, locations: List[str]) -> List[LocationData]:
        records = await self.storage.batch_get_locations(locations)
        metars = await self.storage.batch_get(Keyspace.METAR, locations)
        tafs = await self.storage.batch_get(Keyspace.TAF, locations)
        result = []
        for loc, record, metar, taf in zip(locations, records, metars, tafs):
            if record is None and not metar and not taf:
                continue
            data = LocationData.from_record(record) if record is not None else LocationData(location=loc)
            data.metar = metar or None
            data.taf = taf or None
            result.append(data)
        return result
