"""Request parsing: URL path and query into an endpoint and location set."""

from typing import List, Tuple
from urllib.parse import parse_qsl

from icaowx.utils import parse_query_list, validate_icao_location

ENDPOINT_METAR = "metar"
ENDPOINT_TAF = "taf"
ENDPOINT_LOCATION = "location"
ENDPOINT_ALL = "all"
ENDPOINTS = (ENDPOINT_METAR, ENDPOINT_TAF, ENDPOINT_LOCATION, ENDPOINT_ALL)

PARAM_LOCATION = "location"

MAX_LOCATIONS = 16


class RequestError(Exception):
    """A request that cannot be served; carries the HTTP status to answer with."""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class PathError(RequestError):
    status_code = 400


class QueryError(RequestError):
    status_code = 400


class UnknownEndpointError(RequestError):
    status_code = 422


class LocationSelectorError(RequestError):
    """No location given, or both a path location and a query list given."""
    status_code = 422


class InvalidLocationError(RequestError):
    status_code = 422


class TooManyLocationsError(RequestError):
    status_code = 403


class LocationNotFoundError(RequestError):
    status_code = 404


class EndpointRequest:
    """A parsed and validated endpoint request."""

    def __init__(self, endpoint: str, locations: List[str], single: bool):
        self.endpoint = endpoint
        self.locations = locations
        self.single = single

    def __repr__(self) -> str:
        return f"EndpointRequest({self.endpoint!r}, {self.locations!r}, single={self.single})"


def parse_path(path: str) -> Tuple[str, str]:
    """
    Split a URL path into endpoint and optional single location.

    "/metar" gives ("metar", ""), "/metar/ukll/" gives ("metar", "UKLL").

    Raises:
        PathError: If the path has no segments or more than two
    """
    if not path.startswith("/"):
        raise PathError(f"Unable to parse URL path {path}")
    p = path.split("/")[1:]
    # Trailing slash is allowed.
    if p and p[-1] == "":
        p = p[:-1]
    if len(p) == 1:
        return p[0], ""
    if len(p) == 2:
        return p[0], p[1].upper()
    raise PathError(f"Unable to parse URL path {path}")


def parse_query(query: str) -> List[str]:
    """
    Extract the uppercased location list from a raw URL query.

    Repeated location parameters are concatenated and each value is split
    on commas.

    Raises:
        QueryError: If the query cannot be decoded or has unknown parameters
    """
    try:
        pairs = parse_qsl(query, keep_blank_values=True, errors="strict")
    except ValueError as e:
        raise QueryError(f"Unable to parse URL query {query}: {e}") from e

    values: List[str] = []
    for key, value in pairs:
        if key != PARAM_LOCATION:
            raise QueryError(f"Unknown parameter {key} in URL query {query}")
        values.append(value)
    return [loc.upper() for loc in parse_query_list(values)]


def validate_locations(locations: List[str]) -> None:
    """Reject the whole request if any location code is malformed."""
    for loc in locations:
        if not validate_icao_location(loc):
            raise InvalidLocationError(f"Invalid ICAO location code format {loc}")


def dispatch(path: str, query: str, max_locations: int = MAX_LOCATIONS) -> EndpointRequest:
    """
    Turn a request path and query into a validated EndpointRequest.

    Exactly one of a path location ("/metar/UKLL") or a query location
    list ("/metar?location=UKLL,UKBB") must be present.

    Raises:
        RequestError: Subclass matching the reason for rejection
    """
    endpoint, single = parse_path(path)
    locations = parse_query(query)

    if endpoint not in ENDPOINTS:
        raise UnknownEndpointError(f"Unknown endpoint {endpoint}")

    if locations and not single:
        if len(locations) > max_locations:
            raise TooManyLocationsError(
                f"{len(locations)} locations specified while maximum of {max_locations} is allowed"
            )
        validate_locations(locations)
        return EndpointRequest(endpoint, locations, single=False)
    if single and not locations:
        validate_locations([single])
        return EndpointRequest(endpoint, [single], single=True)
    if not single and not locations:
        raise LocationSelectorError("Location not specified")
    raise LocationSelectorError(
        f"Single location {single} and multiple locations {locations} "
        "must not be specified in the same request"
    )
