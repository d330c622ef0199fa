import os
import queue

from flightpipe.airports import AirportSaver, airports_file, format_float32
from flightpipe.columns import AIRPORT_CODE, LATITUDE, LONGITUDE
from flightpipe.queues import ChannelConsumer
from flightpipe.serializer import (
    DynamicMap,
    Message,
    MessageType,
    serialize_float,
    serialize_string,
)


def _airport(code, lat, lon):
    return DynamicMap(
        {
            AIRPORT_CODE: serialize_string(code),
            LATITUDE: serialize_float(lat),
            LONGITUDE: serialize_float(lon),
        }
    )


def _msg(kind, rows, client_id="c1"):
    return Message(
        message_type=kind, rows=rows, client_id=client_id, message_id=0, row_id=0
    )


def _run(base, messages):
    channel = queue.Queue()
    for msg in messages:
        channel.put(msg)
    channel.put(None)
    AirportSaver(ChannelConsumer(channel), str(base)).save_airports()


def test_airports_are_written_and_file_is_finalized_on_eof(tmp_path):
    base = tmp_path / "airports"
    _run(
        base,
        [
            _msg(MessageType.AIRPORTS, [_airport("JFK", 40.6398, -73.7789)]),
            _msg(MessageType.AIRPORTS, [_airport("EZE", -34.8222, -58.5358)]),
            _msg(MessageType.EOF_AIRPORTS, []),
        ],
    )
    final = airports_file(str(base), "c1")
    assert not os.path.exists(airports_file(str(base), "c1", temporary=True))
    with open(final, encoding="utf-8") as handle:
        lines = handle.read().splitlines()
    assert lines == ["JFK,40.6398,-73.7789", "EZE,-34.8222,-58.5358"]


def test_without_eof_only_temporary_file_exists(tmp_path):
    base = tmp_path / "airports"
    _run(base, [_msg(MessageType.AIRPORTS, [_airport("JFK", 1.5, 2.25)])])
    temporary = airports_file(str(base), "c1", temporary=True)
    assert str(temporary) == f"{base}_c1_tmp.csv"
    with open(temporary, encoding="utf-8") as handle:
        assert handle.read().splitlines() == ["JFK,1.5,2.25"]
    assert not os.path.exists(airports_file(str(base), "c1"))


def test_rows_missing_coordinates_are_skipped(tmp_path):
    base = tmp_path / "airports"
    incomplete = DynamicMap({AIRPORT_CODE: serialize_string("BAD")})
    _run(
        base,
        [
            _msg(MessageType.AIRPORTS, [incomplete, _airport("FRA", 50.0, 8.5)]),
            _msg(MessageType.EOF_AIRPORTS, []),
        ],
    )
    with open(airports_file(str(base), "c1"), encoding="utf-8") as handle:
        assert handle.read().splitlines() == ["FRA,50,8.5"]


def test_eof_for_unknown_client_creates_no_file(tmp_path):
    base = tmp_path / "airports"
    _run(base, [_msg(MessageType.EOF_AIRPORTS, [], client_id="ghost")])
    final = airports_file(str(base), "ghost")
    assert str(final) == f"{base}_ghost.csv"
    assert not os.path.exists(final)
    assert os.listdir(tmp_path) == []


def test_clients_get_separate_files(tmp_path):
    base = tmp_path / "airports"
    _run(
        base,
        [
            _msg(MessageType.AIRPORTS, [_airport("AAA", 1.0, 2.0)], client_id="a"),
            _msg(MessageType.AIRPORTS, [_airport("BBB", 3.0, 4.0)], client_id="b"),
            _msg(MessageType.EOF_AIRPORTS, [], client_id="a"),
            _msg(MessageType.EOF_AIRPORTS, [], client_id="b"),
        ],
    )
    with open(airports_file(str(base), "a"), encoding="utf-8") as handle:
        assert handle.read().startswith("AAA,")
    with open(airports_file(str(base), "b"), encoding="utf-8") as handle:
        assert handle.read().startswith("BBB,")


def test_format_float32_reads_back_to_the_same_float32():
    for value in (40.6398, -73.7789, 0.1, 123456.78):
        text = format_float32(value)
        assert DynamicMap({LATITUDE: serialize_float(float(text))}).get_as_float(
            LATITUDE
        ) == DynamicMap({LATITUDE: serialize_float(value)}).get_as_float(LATITUDE)


def test_format_float32_whole_numbers_have_no_exponent():
    assert format_float32(100.0) == "100"