"""
Minimal GTFS-Realtime wire-format decoder.

Decodes the trip update subset of a GTFS-RT FeedMessage directly from the
protobuf wire format, without generated bindings:

  FeedMessage     1: header, 2: entity (repeated)
  FeedHeader      2: timestamp
  FeedEntity      1: id, 3: trip_update
  TripUpdate      1: trip, 2: stop_time_update (repeated)
  TripDescriptor  1: trip_id, 5: route_id
  StopTimeUpdate  1: stop_sequence, 2: arrival, 3: departure, 4: stop_id
  StopTimeEvent   2: time

Every other field, at any nesting level, is skipped according to its wire type.
Each nested message is parsed from its own bounded region, so a parser can be
exercised on its own with a synthetic byte string.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

# Protobuf wire types
WIRE_VARINT = 0
WIRE_FIXED64 = 1
WIRE_LENGTH_DELIMITED = 2
WIRE_START_GROUP = 3
WIRE_END_GROUP = 4
WIRE_FIXED32 = 5

# FeedMessage fields
FEED_HEADER = 1
FEED_ENTITY = 2

# FeedHeader fields
HEADER_TIMESTAMP = 2

# FeedEntity fields
ENTITY_ID = 1
ENTITY_TRIP_UPDATE = 3

# TripUpdate fields
TRIP_UPDATE_TRIP = 1
TRIP_UPDATE_STOP_TIME_UPDATE = 2

# TripDescriptor fields
TRIP_TRIP_ID = 1
TRIP_ROUTE_ID = 5

# StopTimeUpdate fields
STU_STOP_SEQUENCE = 1
STU_ARRIVAL = 2
STU_DEPARTURE = 3
STU_STOP_ID = 4

# StopTimeEvent fields
STE_TIME = 2

_MAX_VARINT_BYTES = 10
_UINT32_MASK = (1 << 32) - 1
_UINT64_MASK = (1 << 64) - 1
_INT64_SIGN = 1 << 63

BytesLike = Union[bytes, bytearray, memoryview]


class DecodeError(ValueError):
    """Raised when the feed bytes are structurally invalid."""


@dataclass
class FeedHeader:
    timestamp: int = 0


@dataclass
class TripDescriptor:
    trip_id: str = ""
    route_id: str = ""


@dataclass
class StopTimeUpdate:
    stop_id: str = ""
    stop_sequence: int = 0
    arrival_time: Optional[int] = None  # Unix timestamp
    departure_time: Optional[int] = None  # Unix timestamp

    @property
    def event_time(self) -> Optional[int]:
        """Arrival time if present, else departure time."""
        if self.arrival_time is not None:
            return self.arrival_time
        return self.departure_time


@dataclass
class TripUpdate:
    trip: TripDescriptor = field(default_factory=TripDescriptor)
    stop_time_updates: List[StopTimeUpdate] = field(default_factory=list)


@dataclass
class FeedEntity:
    id: str = ""
    trip_update: Optional[TripUpdate] = None


@dataclass
class FeedMessage:
    header: FeedHeader = field(default_factory=FeedHeader)
    entities: List[FeedEntity] = field(default_factory=list)


class _Region:
    """A read window over [pos, end) of a shared buffer."""

    __slots__ = ("_data", "pos", "end")

    def __init__(self, data: memoryview, pos: int, end: int):
        self._data = data
        self.pos = pos
        self.end = end

    def at_end(self) -> bool:
        return self.pos >= self.end

    def read_varint(self) -> int:
        result = 0
        shift = 0
        for _ in range(_MAX_VARINT_BYTES):
            if self.pos >= self.end:
                raise DecodeError(f"Truncated varint at offset {self.pos}")
            b = self._data[self.pos]
            self.pos += 1
            result |= (b & 0x7F) << shift
            if not b & 0x80:
                return result
            shift += 7
        raise DecodeError(f"Malformed varint ending at offset {self.pos}")

    def read_tag(self) -> Tuple[int, int]:
        """Return (field_number, wire_type)."""
        tag = self.read_varint() & _UINT32_MASK
        field_number = tag >> 3
        if field_number == 0:
            raise DecodeError(f"Invalid field number 0 at offset {self.pos}")
        return field_number, tag & 0x07

    def _advance(self, count: int) -> int:
        start = self.pos
        if count < 0 or start + count > self.end:
            raise DecodeError(
                f"Length {count} at offset {start} overruns region ending at {self.end}"
            )
        self.pos = start + count
        return start

    def read_region(self) -> "_Region":
        """Read a length prefix and return the bounded region it covers."""
        length = self.read_varint()
        start = self._advance(length)
        return _Region(self._data, start, start + length)

    def read_bytes(self) -> bytes:
        length = self.read_varint()
        start = self._advance(length)
        return bytes(self._data[start:start + length])

    def read_string(self) -> str:
        return self.read_bytes().decode("utf-8", errors="replace")

    def skip_field(self, field_number: int, wire_type: int) -> None:
        if wire_type == WIRE_VARINT:
            self.read_varint()
        elif wire_type == WIRE_FIXED64:
            self._advance(8)
        elif wire_type == WIRE_LENGTH_DELIMITED:
            self._advance(self.read_varint())
        elif wire_type == WIRE_FIXED32:
            self._advance(4)
        elif wire_type == WIRE_START_GROUP:
            self._skip_group(field_number)
        elif wire_type == WIRE_END_GROUP:
            raise DecodeError(f"Unexpected end-group for field {field_number}")
        else:
            raise DecodeError(f"Unknown wire type {wire_type} for field {field_number}")

    def _skip_group(self, group_field: int) -> None:
        while not self.at_end():
            field_number, wire_type = self.read_tag()
            if wire_type == WIRE_END_GROUP:
                if field_number != group_field:
                    raise DecodeError(f"Mismatched end-group {field_number} for group {group_field}")
                return
            self.skip_field(field_number, wire_type)
        raise DecodeError(f"Unterminated group {group_field}")

    def expect_exhausted(self) -> None:
        if self.pos != self.end:
            raise DecodeError(f"Region not exhausted: stopped at {self.pos}, ends at {self.end}")


def _to_int64(value: int) -> int:
    value &= _UINT64_MASK
    if value & _INT64_SIGN:
        value -= 1 << 64
    return value


def parse_feed_header(region: _Region) -> FeedHeader:
    header = FeedHeader()
    while not region.at_end():
        field_number, wire_type = region.read_tag()
        if field_number == HEADER_TIMESTAMP and wire_type == WIRE_VARINT:
            header.timestamp = region.read_varint() & _UINT64_MASK
        else:
            region.skip_field(field_number, wire_type)
    region.expect_exhausted()
    return header


def parse_stop_time_event(region: _Region) -> Optional[int]:
    time_value = None
    while not region.at_end():
        field_number, wire_type = region.read_tag()
        if field_number == STE_TIME and wire_type == WIRE_VARINT:
            time_value = _to_int64(region.read_varint())
        else:
            region.skip_field(field_number, wire_type)
    region.expect_exhausted()
    return time_value


def parse_stop_time_update(region: _Region) -> StopTimeUpdate:
    update = StopTimeUpdate()
    while not region.at_end():
        field_number, wire_type = region.read_tag()
        if field_number == STU_STOP_SEQUENCE and wire_type == WIRE_VARINT:
            update.stop_sequence = region.read_varint() & _UINT32_MASK
        elif field_number == STU_STOP_ID and wire_type == WIRE_LENGTH_DELIMITED:
            update.stop_id = region.read_string()
        elif field_number == STU_ARRIVAL and wire_type == WIRE_LENGTH_DELIMITED:
            update.arrival_time = parse_stop_time_event(region.read_region())
        elif field_number == STU_DEPARTURE and wire_type == WIRE_LENGTH_DELIMITED:
            update.departure_time = parse_stop_time_event(region.read_region())
        else:
            region.skip_field(field_number, wire_type)
    region.expect_exhausted()
    return update


def parse_trip_descriptor(region: _Region) -> TripDescriptor:
    trip = TripDescriptor()
    while not region.at_end():
        field_number, wire_type = region.read_tag()
        if field_number == TRIP_TRIP_ID and wire_type == WIRE_LENGTH_DELIMITED:
            trip.trip_id = region.read_string()
        elif field_number == TRIP_ROUTE_ID and wire_type == WIRE_LENGTH_DELIMITED:
            trip.route_id = region.read_string()
        else:
            region.skip_field(field_number, wire_type)
    region.expect_exhausted()
    return trip


def parse_trip_update(region: _Region) -> TripUpdate:
    trip_update = TripUpdate()
    while not region.at_end():
        field_number, wire_type = region.read_tag()
        if field_number == TRIP_UPDATE_TRIP and wire_type == WIRE_LENGTH_DELIMITED:
            trip_update.trip = parse_trip_descriptor(region.read_region())
        elif field_number == TRIP_UPDATE_STOP_TIME_UPDATE and wire_type == WIRE_LENGTH_DELIMITED:
            trip_update.stop_time_updates.append(parse_stop_time_update(region.read_region()))
        else:
            region.skip_field(field_number, wire_type)
    region.expect_exhausted()
    return trip_update


def parse_feed_entity(region: _Region) -> FeedEntity:
    entity = FeedEntity()
    while not region.at_end():
        field_number, wire_type = region.read_tag()
        if field_number == ENTITY_ID and wire_type == WIRE_LENGTH_DELIMITED:
            entity.id = region.read_string()
        elif field_number == ENTITY_TRIP_UPDATE and wire_type == WIRE_LENGTH_DELIMITED:
            entity.trip_update = parse_trip_update(region.read_region())
        else:
            # Vehicle positions (4) and alerts (5) land here
            region.skip_field(field_number, wire_type)
    region.expect_exhausted()
    return entity


def parse_feed_message(region: _Region) -> FeedMessage:
    feed = FeedMessage()
    while not region.at_end():
        field_number, wire_type = region.read_tag()
        if field_number == FEED_HEADER and wire_type == WIRE_LENGTH_DELIMITED:
            feed.header = parse_feed_header(region.read_region())
        elif field_number == FEED_ENTITY and wire_type == WIRE_LENGTH_DELIMITED:
            feed.entities.append(parse_feed_entity(region.read_region()))
        else:
            region.skip_field(field_number, wire_type)
    region.expect_exhausted()
    return feed


def region_of(data: BytesLike) -> _Region:
    """Wrap a whole buffer as a region."""
    view = memoryview(data).cast("B")
    return _Region(view, 0, len(view))


def decode_feed(data: BytesLike) -> FeedMessage:
    """
    Decode a GTFS-Realtime FeedMessage.

    Args:
        data: Raw protobuf bytes of the whole feed.

    Returns:
        The decoded FeedMessage.

    Raises:
        DecodeError: If the bytes are truncated or otherwise malformed. No
            partial result is returned.
    """
    feed = parse_feed_message(region_of(data))
    logger.debug(f"Decoded feed with {len(feed.entities)} entities")
    return feed
