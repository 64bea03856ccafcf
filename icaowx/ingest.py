"""Feed ingestion: CSV feeds into storage.

One ingestor exists per feed. Each owns its own "last updated" marker,
which only its own run() writes; runs of the same ingestor never overlap
when driven by the scheduler.
"""

import csv
import io
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from icaowx.csv_header import CsvHeaderError, CsvRecordReader, CsvRowWidthError, parse_csv_header
from icaowx.feed_sources import FeedSource, FeedTransportError, HttpFeedSource
from icaowx.storage import Keyspace, LocationRecord, Storage, StorageError
from icaowx.utils import TimestampError, expire_seconds, validate_icao_location

logger = logging.getLogger(__name__)

METAR_EXPIRE_SECONDS = 3 * 3600
TAF_EXPIRE_SECONDS = 0


class RecordError(ValueError):
    """Raised for a CSV row that cannot be stored; the row is skipped."""


class FilteredRecord(RecordError):
    """Raised for a row that is valid CSV but not wanted (closed, no ICAO code)."""


class IngestResult:
    """Outcome of one ingestion cycle."""

    def __init__(self, feed: str):
        self.feed = feed
        self.not_modified = False
        self.stored = 0
        self.unchanged = 0
        self.skipped = 0
        self.error: Optional[str] = None
        self.duration_seconds = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


def _field(row: List[str], idx: int) -> str:
    try:
        return row[idx]
    except IndexError:
        raise RecordError(f"Row has {len(row)} fields, column {idx} missing") from None


class FeedIngestor(ABC):
    """Base class for feeds that store CSV rows keyed by location code."""

    name: str = "feed"
    field_names: List[str] = []
    # Reject rows whose width differs from the header row.
    enforce_row_width: bool = True

    def __init__(self, source: FeedSource, storage: Storage, clock: Callable[[], float] = time.time):
        self.source = source
        self.storage = storage
        self.clock = clock
        self.last_updated: Optional[datetime] = None

    @abstractmethod
    async def store_row(self, row: List[str], columns: List[int]) -> bool:
        """
        Store one data row.

        Args:
            row: CSV fields
            columns: Indices of field_names in the header row

        Returns:
            True if a value was written, False if storage left it unchanged

        Raises:
            RecordError: If the row must be skipped
        """
        pass

    async def run(self) -> IngestResult:
        """Run one ingestion cycle. Never raises for feed or row problems."""
        result = IngestResult(self.name)
        started = time.monotonic()
        logger.info(f"Updating {self.name}")
        try:
            await self._run(result)
        except FeedTransportError as e:
            result.error = str(e)
            logger.error(f"Error retrieving {self.name} from {self.source.url}: {e}")
        except CsvHeaderError as e:
            result.error = str(e)
            logger.error(f"Error parsing header of {self.name} CSV: {e}")
        except StorageError as e:
            result.error = str(e)
            logger.error(f"Storage error while updating {self.name}, aborting after {result.stored} records: {e}")
        result.duration_seconds = time.monotonic() - started
        if result.ok and not result.not_modified:
            logger.info(
                f"Updated {result.stored} {self.name} records "
                f"({result.unchanged} unchanged, {result.skipped} skipped) in {result.duration_seconds:.2f}s"
            )
        return result

    async def _run(self, result: IngestResult) -> None:
        start = time.monotonic()
        body = await self.source.fetch(self.last_updated)
        if body is None:
            result.not_modified = True
            logger.info(f"{self.name} not updated since last update")
            return
        self.last_updated = datetime.now(timezone.utc)
        logger.info(f"Downloaded {self.name} in {time.monotonic() - start:.2f}s")

        reader = CsvRecordReader(io.StringIO(body))
        columns = parse_csv_header(reader, self.field_names)
        if not self.enforce_row_width:
            reader.fields_per_record = None

        while True:
            try:
                row = next(reader)
            except StopIteration:
                break
            except (CsvRowWidthError, csv.Error) as e:
                result.skipped += 1
                logger.warning(f"Error reading {self.name} CSV row {reader.rows_read}: {e}")
                continue
            try:
                if await self.store_row(row, columns):
                    result.stored += 1
                else:
                    result.unchanged += 1
            except FilteredRecord as e:
                result.skipped += 1
                logger.debug(f"Skipping {self.name} row {reader.rows_read}: {e}")
            except RecordError as e:
                result.skipped += 1
                logger.warning(f"Skipping {self.name} row {reader.rows_read}: {e}")

    def _location(self, code: str) -> str:
        if not validate_icao_location(code):
            raise FilteredRecord(f"Invalid ICAO location code '{code}'")
        return code

    def _expire(self, time_str: str, window: int) -> int:
        try:
            return expire_seconds(time_str, window, now=self.clock())
        except TimestampError as e:
            raise RecordError(str(e)) from e


class MetarIngestor(FeedIngestor):
    """METARs from the aviationweather.gov cache CSV."""

    name = "METARs"
    field_names = ["raw_text", "station_id", "observation_time", "metar_type"]

    async def store_row(self, row: List[str], columns: List[int]) -> bool:
        col_raw_text, col_station, col_obs_time, col_type = columns
        location = self._location(_field(row, col_station))
        expire = self._expire(_field(row, col_obs_time), METAR_EXPIRE_SECONDS)
        metar = f"{_field(row, col_type)} {_field(row, col_raw_text)}"
        await self.storage.upsert_with_ttl(Keyspace.METAR, location, metar, expire)
        return True


class TafIngestor(FeedIngestor):
    """TAFs from the aviationweather.gov cache CSV."""

    name = "TAFs"
    field_names = ["raw_text", "station_id", "valid_time_to"]
    # TAF rows carry a variable number of forecast groups.
    enforce_row_width = False

    async def store_row(self, row: List[str], columns: List[int]) -> bool:
        col_raw_text, col_station, col_time_to = columns
        location = self._location(_field(row, col_station))
        expire = self._expire(_field(row, col_time_to), TAF_EXPIRE_SECONDS)
        await self.storage.upsert_with_ttl(Keyspace.TAF, location, _field(row, col_raw_text), expire)
        return True


class AirportIngestor(FeedIngestor):
    """Location metadata from the OurAirports airports.csv."""

    name = "airports"
    field_names = [
        "type",
        "name",
        "latitude_deg",
        "longitude_deg",
        "elevation_ft",
        "iso_country",
        "iso_region",
        "municipality",
        "gps_code",
    ]

    async def store_row(self, row: List[str], columns: List[int]) -> bool:
        col_type, col_name, col_lat, col_lon, col_alt, col_country, _, col_city, col_code = columns
        if _field(row, col_type) == "closed":
            raise FilteredRecord("Airport is closed")
        location = self._location(_field(row, col_code))
        try:
            altitude = int(_field(row, col_alt))
            latitude = float(_field(row, col_lat))
            longitude = float(_field(row, col_lon))
        except ValueError as e:
            raise RecordError(f"Cannot parse coordinates of {location}: {e}") from e
        record = LocationRecord(
            location=location,
            name=_field(row, col_name),
            city=_field(row, col_city),
            country_code=_field(row, col_country),
            latitude=latitude,
            longitude=longitude,
            altitude_feet=altitude,
        )
        return await self.storage.create_location_if_absent(record)


def build_ingestors(config, storage: Storage) -> List[Tuple[FeedIngestor, int]]:
    """Create (ingestor, interval_seconds) for every enabled feed in an AppConfig."""
    ingestors: List[Tuple[FeedIngestor, int]] = []
    for feed_config, cls in (
        (config.feeds.airports, AirportIngestor),
        (config.feeds.metar, MetarIngestor),
        (config.feeds.taf, TafIngestor),
    ):
        if feed_config.enabled:
            source = HttpFeedSource(feed_config.url, config.fetch)
            ingestors.append((cls(source, storage), feed_config.interval_seconds))
    return ingestors
