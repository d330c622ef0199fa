import queue

import pytest

from flightpipe.columns import (
    DESTINATION_AIRPORT,
    DIRECT_DISTANCE,
    NODES_VISITED,
    ROUTE,
    STARTING_AIRPORT,
    TOTAL_TRAVEL_DISTANCE,
)
from flightpipe.completer import CompleterSettings, DistanceCompleter
from flightpipe.queues import ChannelConsumer, ChannelProducer
from flightpipe.serializer import (
    DynamicMap,
    Message,
    MessageType,
    serialize_dyn_map,
    serialize_float,
    serialize_string,
)


class _RecordingConsumer:
    def __init__(self, messages):
        self._messages = list(messages)
        self.statuses = []

    def pop(self):
        return self._messages.pop(0) if self._messages else None

    def set_status_of_last_message(self, status):
        self.statuses.append(status)


def _flight(route="A||B||C||D", extra=None):
    columns = {
        STARTING_AIRPORT: serialize_string("A"),
        DESTINATION_AIRPORT: serialize_string("D"),
        ROUTE: serialize_string(route),
    }
    columns.update(extra or {})
    return DynamicMap(columns)


def _message(rows, kind=MessageType.FLIGHT_ROWS, client_id="1"):
    return Message(message_type=kind, rows=rows, client_id=client_id, message_id=0, row_id=0)


def _run(airports, messages, settings=None):
    input_channel = queue.Queue()
    output_channel = queue.Queue()
    for msg in messages:
        input_channel.put(msg)
    input_channel.put(None)
    completer = DistanceCompleter(
        0,
        ChannelConsumer(input_channel),
        ChannelProducer(output_channel),
        ChannelProducer(queue.Queue()),
        settings or CompleterSettings(),
        airports=airports,
    )
    completer.complete_distances()
    return completer, output_channel


def _column_count(row):
    return int.from_bytes(serialize_dyn_map(row)[:4], "big")


def _complete_one(points):
    airports = {"1": dict(zip("ABCD", points))}
    _, output = _run(airports, [_message([_flight()])])
    row = output.get_nowait().rows[0]
    assert _column_count(row) == 5
    return row.get_as_float(TOTAL_TRAVEL_DISTANCE), row.get_as_float(DIRECT_DISTANCE)


def test_two_stopovers_direct_is_less_than_total():
    total, direct = _complete_one([(0.0, 0.0), (1.0, 0.0), (0.0, 1.0), (1.0, 1.0)])
    assert direct < total


def test_direct_distance_same_as_total_travel_distance():
    total, direct = _complete_one([(0.0, 0.0), (0.0, 1.0), (0.0, 2.0), (0.0, 3.0)])
    assert abs(direct - total) < 0.001


def test_total_travel_distance_is_three_times_direct_distance():
    total, direct = _complete_one([(0.0, 0.0), (0.0, 1.0), (1.0, 1.0), (0.0, 1.0)])
    assert abs(3 * direct - total) < 0.001


def test_existing_total_travel_distance_is_kept():
    airports = {"1": {"A": (0.0, 0.0), "D": (0.0, 1.0)}}
    row = _flight(route="A||D", extra={TOTAL_TRAVEL_DISTANCE: serialize_float(1234.5)})
    _, output = _run(airports, [_message([row])])
    result = output.get_nowait().rows[0]
    assert result.get_as_float(TOTAL_TRAVEL_DISTANCE) == 1234.5


def test_rows_with_unknown_airports_are_skipped():
    airports = {"1": {"A": (0.0, 0.0), "D": (0.0, 1.0)}}
    good = _flight(route="A||D")
    bad = _flight(route="A||X||D")
    _, output = _run(airports, [_message([bad, good])])
    rows = output.get_nowait().rows
    assert len(rows) == 1
    assert rows[0].get_as_string(ROUTE) == "A||D"


def test_missing_airports_rejects_message(tmp_path):
    consumer = _RecordingConsumer([_message([_flight()], client_id="nobody")])
    output_channel = queue.Queue()
    completer = DistanceCompleter(
        0,
        consumer,
        ChannelProducer(output_channel),
        ChannelProducer(queue.Queue()),
        CompleterSettings(airports_filename=str(tmp_path / "airports")),
    )
    completer.complete_distances()
    assert consumer.statuses == [False]
    assert output_channel.empty()


def test_airports_are_loaded_from_file(tmp_path):
    base = tmp_path / "airports"
    (tmp_path / "airports_7.csv").write_text("A,0,0\nD,0,1\n", encoding="utf-8")
    settings = CompleterSettings(airports_filename=str(base))
    _, output = _run({}, [_message([_flight(route="A||D")], client_id="7")], settings)
    row = output.get_nowait().rows[0]
    assert abs(row.get_as_float(DIRECT_DISTANCE) - row.get_as_float(TOTAL_TRAVEL_DISTANCE)) < 0.001


def test_load_airports_returns_coordinates(tmp_path):
    (tmp_path / "airports_c.csv").write_text("JFK,40.6398,-73.7789\n", encoding="utf-8")
    completer = DistanceCompleter(
        0,
        _RecordingConsumer([]),
        ChannelProducer(queue.Queue()),
        ChannelProducer(queue.Queue()),
        CompleterSettings(airports_filename=str(tmp_path / "airports")),
    )
    airports = completer.load_airports("c")
    assert list(airports) == ["JFK"]
    assert airports["JFK"][0] == pytest.approx(40.6398, abs=1e-4)
    assert airports["JFK"][1] == pytest.approx(-73.7789, abs=1e-4)


def test_load_airports_rejects_malformed_line(tmp_path):
    (tmp_path / "airports_c.csv").write_text("JFK,notanumber,1\n", encoding="utf-8")
    completer = DistanceCompleter(
        0,
        _RecordingConsumer([]),
        ChannelProducer(queue.Queue()),
        ChannelProducer(queue.Queue()),
        CompleterSettings(airports_filename=str(tmp_path / "airports")),
    )
    with pytest.raises(ValueError):
        completer.load_airports("c")


def test_eof_is_forwarded_and_client_state_cleared():
    airports = {"1": {"A": (0.0, 0.0)}}
    eof = _message(
        [DynamicMap({NODES_VISITED: serialize_string("")})],
        kind=MessageType.EOF_FLIGHT_ROWS,
    )
    completer, output = _run(airports, [eof])
    forwarded = output.get_nowait()
    assert forwarded.message_type == MessageType.EOF_FLIGHT_ROWS
    assert forwarded.rows[0].get_as_string(NODES_VISITED) == ""
    assert "1" not in airports