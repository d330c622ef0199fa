import pytest

from flightpipe import columns
from flightpipe.columns import is_float_column, is_int_column


@pytest.mark.parametrize(
    "key",
    [
        columns.LATITUDE,
        columns.LONGITUDE,
        columns.TOTAL_FARE,
        columns.TOTAL_TRAVEL_DISTANCE,
        columns.DIRECT_DISTANCE,
        columns.MAX,
        columns.AVG,
    ],
)
def test_float_columns_are_recognised(key):
    assert is_float_column(key) is True
    assert is_int_column(key) is False


@pytest.mark.parametrize(
    "key", [columns.TOTAL_STOPOVERS, columns.CONVERTED_TRAVEL_DURATION]
)
def test_int_columns_are_recognised(key):
    assert is_int_column(key) is True
    assert is_float_column(key) is False


@pytest.mark.parametrize(
    "key",
    [columns.LEG_ID, columns.ROUTE, columns.STARTING_AIRPORT, columns.FINAL_AVG],
)
def test_text_columns_are_neither(key):
    assert is_float_column(key) is False
    assert is_int_column(key) is False


def test_lookup_is_case_sensitive():
    assert is_float_column(columns.LATITUDE.lower()) is False
    assert is_int_column(columns.TOTAL_STOPOVERS.upper()) is False