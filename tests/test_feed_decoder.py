"""Tests for the GTFS-RT wire-format decoder."""

import unittest
import sys
from pathlib import Path

# Add src to path so we can import tramtime
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from tramtime.feed_decoder import (
    DecodeError,
    decode_feed,
    parse_stop_time_update,
    parse_trip_descriptor,
    region_of,
)

import feed_builders as fb

try:
    from google.transit import gtfs_realtime_pb2
except ImportError:
    gtfs_realtime_pb2 = None


class TestDecodeKnownFields(unittest.TestCase):
    """Decoding the modelled message hierarchy."""

    def test_decode_full_feed(self):
        data = fb.feed(
            [
                fb.entity("e1", fb.trip_update(
                    fb.trip_descriptor("trip-1", "4"),
                    [
                        fb.stop_time_update("S1", arrival=1700000600, departure=1700000630, stop_sequence=3),
                        fb.stop_time_update("S2", arrival=1700000900, stop_sequence=4),
                    ],
                )),
                fb.entity("e2", fb.trip_update(fb.trip_descriptor("trip-2"), [])),
            ],
            fb.header(1700000000),
        )

        feed = decode_feed(data)

        self.assertEqual(feed.header.timestamp, 1700000000)
        self.assertEqual([e.id for e in feed.entities], ["e1", "e2"])

        first = feed.entities[0].trip_update
        self.assertEqual(first.trip.trip_id, "trip-1")
        self.assertEqual(first.trip.route_id, "4")
        self.assertEqual(len(first.stop_time_updates), 2)
        self.assertEqual(first.stop_time_updates[0].stop_id, "S1")
        self.assertEqual(first.stop_time_updates[0].stop_sequence, 3)
        self.assertEqual(first.stop_time_updates[0].arrival_time, 1700000600)
        self.assertEqual(first.stop_time_updates[0].departure_time, 1700000630)
        self.assertIsNone(first.stop_time_updates[1].departure_time)

        second = feed.entities[1].trip_update
        self.assertEqual(second.trip.trip_id, "trip-2")
        self.assertEqual(second.trip.route_id, "")
        self.assertEqual(second.stop_time_updates, [])

    def test_empty_input_is_empty_feed(self):
        feed = decode_feed(b"")
        self.assertEqual(feed.entities, [])
        self.assertEqual(feed.header.timestamp, 0)

    def test_entity_without_trip_update(self):
        # Field 4 is a vehicle position, which is not modelled
        data = fb.feed([fb.entity("v1", extra=fb.bytes_field(4, fb.str_field(1, "veh")))])
        feed = decode_feed(data)
        self.assertEqual(len(feed.entities), 1)
        self.assertIsNone(feed.entities[0].trip_update)

    def test_departure_only_update(self):
        update = parse_stop_time_update(region_of(fb.stop_time_update("S9", departure=1700001000)))
        self.assertIsNone(update.arrival_time)
        self.assertEqual(update.departure_time, 1700001000)
        self.assertEqual(update.event_time, 1700001000)

    def test_arrival_preferred_over_departure(self):
        update = parse_stop_time_update(
            region_of(fb.stop_time_update("S9", arrival=1700000900, departure=1700001000))
        )
        self.assertEqual(update.event_time, 1700000900)

    def test_event_without_time(self):
        data = fb.stop_time_update("S9") + fb.bytes_field(2, fb.int_field(1, 30))  # delay only
        update = parse_stop_time_update(region_of(data))
        self.assertIsNone(update.arrival_time)
        self.assertIsNone(update.event_time)

    def test_negative_event_time(self):
        update = parse_stop_time_update(region_of(fb.stop_time_update("S1", arrival=-5)))
        self.assertEqual(update.arrival_time, -5)

    def test_stop_sequence_is_uint32(self):
        data = fb.int_field(1, (1 << 32) + 7) + fb.str_field(4, "S1")
        update = parse_stop_time_update(region_of(data))
        self.assertEqual(update.stop_sequence, 7)

    def test_trip_descriptor_in_isolation(self):
        trip = parse_trip_descriptor(region_of(fb.trip_descriptor("T-9", "R-2")))
        self.assertEqual(trip.trip_id, "T-9")
        self.assertEqual(trip.route_id, "R-2")


class TestUnknownFields(unittest.TestCase):
    """Unknown fields are skipped at every level without disturbing known ones."""

    def test_unknown_fields_at_every_level(self):
        extra = fb.unknown_fields()
        data = fb.feed(
            [
                fb.entity(
                    "e1",
                    fb.trip_update(
                        fb.trip_descriptor("trip-1", "T1", extra=extra),
                        [fb.stop_time_update("S1", arrival=1700000600, stop_sequence=1, extra=extra)],
                        extra=extra,
                    ),
                    extra=extra,
                ),
                fb.entity("e2", fb.trip_update(fb.trip_descriptor("trip-2"), [
                    fb.stop_time_update("S2", departure=1700000700),
                ])),
            ],
            fb.header(1700000000, extra=extra),
            extra=extra,
        )

        feed = decode_feed(data)

        self.assertEqual(feed.header.timestamp, 1700000000)
        self.assertEqual(len(feed.entities), 2)
        trip_update = feed.entities[0].trip_update
        self.assertEqual(trip_update.trip.trip_id, "trip-1")
        self.assertEqual(trip_update.trip.route_id, "T1")
        self.assertEqual(trip_update.stop_time_updates[0].stop_id, "S1")
        self.assertEqual(trip_update.stop_time_updates[0].arrival_time, 1700000600)
        self.assertEqual(feed.entities[1].trip_update.stop_time_updates[0].departure_time, 1700000700)

    def test_unknown_fields_inside_stop_time_event(self):
        event = fb.int_field(1, 60) + fb.unknown_fields() + fb.int_field(2, 1700000600) + fb.int_field(3, 0)
        data = fb.bytes_field(2, event) + fb.str_field(4, "S1")
        update = parse_stop_time_update(region_of(data))
        self.assertEqual(update.arrival_time, 1700000600)

    def test_known_field_number_with_other_wire_type_is_skipped(self):
        # stop_id sent as a varint is not a string; skip it and keep going
        data = fb.int_field(4, 99) + fb.str_field(4, "S1")
        update = parse_stop_time_update(region_of(data))
        self.assertEqual(update.stop_id, "S1")


class TestMalformedInput(unittest.TestCase):
    """Structural corruption fails the whole decode."""

    def setUp(self):
        self.valid = fb.simple_feed([("trip-1", [("S1", 1700000600, None)])])

    def test_truncated_stream(self):
        with self.assertRaises(DecodeError):
            decode_feed(self.valid[:-3])

    def test_length_overruns_buffer(self):
        data = fb.key(2, fb.LENGTH_DELIMITED) + fb.varint(50) + b"\x0a\x01a"
        with self.assertRaises(DecodeError):
            decode_feed(data)

    def test_nested_length_overruns_parent(self):
        # Entity claims 3 bytes; its id string claims 10
        inner = fb.key(1, fb.LENGTH_DELIMITED) + fb.varint(10)
        data = fb.key(2, fb.LENGTH_DELIMITED) + fb.varint(len(inner) + 1) + inner + b"x" + b"y" * 20
        with self.assertRaises(DecodeError):
            decode_feed(data)

    def test_overlong_varint(self):
        data = fb.key(1, fb.VARINT) + b"\xff" * 11
        with self.assertRaises(DecodeError):
            decode_feed(data)

    def test_field_number_zero(self):
        with self.assertRaises(DecodeError):
            decode_feed(b"\x00\x01")

    def test_invalid_wire_type(self):
        with self.assertRaises(DecodeError):
            decode_feed(fb.key(9, 7) + b"\x00")

    def test_unterminated_group(self):
        with self.assertRaises(DecodeError):
            decode_feed(fb.key(9, fb.START_GROUP) + fb.int_field(1, 1))

    def test_truncated_fixed64(self):
        with self.assertRaises(DecodeError):
            decode_feed(fb.key(9, fb.FIXED64) + b"\x00\x00")

    def test_decode_error_is_value_error(self):
        self.assertTrue(issubclass(DecodeError, ValueError))


@unittest.skipIf(gtfs_realtime_pb2 is None, "gtfs-realtime-bindings not installed")
class TestBindingsCompatibility(unittest.TestCase):
    """Feeds serialized by the official bindings decode correctly."""

    def _build_feed(self) -> bytes:
        feed = gtfs_realtime_pb2.FeedMessage()
        feed.header.gtfs_realtime_version = "2.0"
        feed.header.timestamp = 1700000000

        entity = feed.entity.add()
        entity.id = "1"
        trip_update = entity.trip_update
        trip_update.trip.trip_id = "001"
        trip_update.trip.route_id = "1"
        trip_update.trip.start_date = "20240101"
        trip_update.trip.direction_id = 0
        trip_update.timestamp = 1700000000

        stop_time = trip_update.stop_time_update.add()
        stop_time.stop_sequence = 12
        stop_time.stop_id = "S1198"
        stop_time.arrival.time = 1700000600
        stop_time.arrival.delay = 30
        stop_time.arrival.uncertainty = 60
        stop_time.departure.time = 1700000660

        stop_time = trip_update.stop_time_update.add()
        stop_time.stop_sequence = 13
        stop_time.stop_id = "S1199"
        stop_time.departure.time = 1700000900

        vehicle_entity = feed.entity.add()
        vehicle_entity.id = "2"
        vehicle_entity.vehicle.trip.trip_id = "001"
        vehicle_entity.vehicle.position.latitude = 43.6
        vehicle_entity.vehicle.position.longitude = 3.88

        alert_entity = feed.entity.add()
        alert_entity.id = "3"
        alert_entity.alert.header_text.translation.add().text = "Works"

        return feed.SerializeToString()

    def test_decode_bindings_feed(self):
        feed = decode_feed(self._build_feed())

        self.assertEqual([e.id for e in feed.entities], ["1", "2", "3"])
        self.assertIsNone(feed.entities[1].trip_update)
        self.assertIsNone(feed.entities[2].trip_update)

        trip_update = feed.entities[0].trip_update
        self.assertEqual(trip_update.trip.trip_id, "001")
        self.assertEqual(trip_update.trip.route_id, "1")

        first, second = trip_update.stop_time_updates
        self.assertEqual(first.stop_id, "S1198")
        self.assertEqual(first.stop_sequence, 12)
        self.assertEqual(first.arrival_time, 1700000600)
        self.assertEqual(first.departure_time, 1700000660)
        self.assertEqual(second.stop_id, "S1199")
        self.assertIsNone(second.arrival_time)
        self.assertEqual(second.event_time, 1700000900)


if __name__ == "__main__":
    unittest.main()
