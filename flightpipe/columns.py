"""Column names, separators and limits shared by the pipeline stages."""

COMMA_SEPARATOR = ","
DOT_COMMA_SEPARATOR = ";"
DOUBLE_PIPE_SEPARATOR = "||"
EQUALS_SEPARATOR = "="
SIMPLE_PIPE_SEPARATOR = "|"
AT_SEPARATOR = "@"

AIRPORT_CODE = "Airport Code"
LATITUDE = "Latitude"
LONGITUDE = "Longitude"

AIRPORT_NAME = "AirportName"
CITY_NAME = "CityName"
COUNTRY_NAME = "CountryName"
COUNTRY_CODE = "CountryCode"
WORLD_AREA_CODE = "WorldAreaCode"
CITY_NAME_ID = "CityNameId"
COUNTRY_NAME_ID = "CountryNameId"
COORDINATES = "Coordinates"
TEMP_SUFFIX = "_tmp"

SEARCH_DATE = "SearchDate"
FLIGHT_DATE = "FlightDate"
FARE_BASIS_CODE = "FareBasisCode"
ELAPSED_DAYS = "ElapsedDays"
IS_BASIC_ECONOMY = "IsBasicEconomy"
IS_REFUNDABLE = "IsRefundable"
IS_NON_STOP = "IsNonStop"
BASE_FARE = "BaseFare"
SEATS_REMAINING = "SeatsRemaining"
SEGMENTS_DEPARTURE_TIME_EPOCH_SECONDS = "SegmentsDepartureTimeEpochSeconds"
SEGMENTS_DEPARTURE_TIME_RAW = "SegmentsDepartureTimeRaw"
SEGMENTS_ARRIVAL_TIME_EPOCH_SECONDS = "SegmentsArrivalTimeEpochSeconds"
SEGMENTS_ARRIVAL_TIME_RAW = "SegmentsArrivalTimeRaw"
SEGMENTS_DEPARTURE_AIRPORT_CODE = "SegmentsDepartureAirportCode"
SEGMENTS_AIRLINE_CODE = "SegmentsAirlineCode"
SEGMENTS_EQUIPMENT_DESCRIPTION = "SegmentsEquipmentDescription"
SEGMENTS_DURATION_IN_SECONDS = "SegmentsDurationInSeconds"
SEGMENTS_DISTANCE = "SegmentsDistance"
SEGMENTS_CABIN_CODE = "SegmentsCabinCode"
LEG_ID = "legId"
STARTING_AIRPORT = "startingAirport"
DESTINATION_AIRPORT = "destinationAirport"
TRAVEL_DURATION = "travelDuration"
TOTAL_FARE = "totalFare"
TOTAL_TRAVEL_DISTANCE = "totalTravelDistance"
DIRECT_DISTANCE = "directDistance"
TOTAL_STOPOVERS = "totalStopovers"
SEGMENTS_ARRIVAL_AIRPORT_CODE = "segmentsArrivalAirportCode"
SEGMENTS_AIRLINE_NAME = "segmentsAirlineName"
NODES_VISITED = "nodesVisited"
EXERCISE = "exercise"
NUMBER_OF_ROW = "numberOfRow"
SERVICE_NAME = "name"

LOCAL_PRICE = "localPrice"
LOCAL_QUANTITY = "localQuantity"
AVG = "avg"
FINAL_AVG = "finalAvg"
MAX = "max"
CONVERTED_TRAVEL_DURATION = "convertedTravelDuration"
JOURNEY = "journey"
ROUTE = "route"
CSV_SUFFIX = ".csv"

BUFFER_SIZE_CHANNELS = 300
MAX_BATCH_LINES = 1500
DEFAULT_BATCH_LINES = 300

MAX_GOROUTINES = 32
DEFAULT_GOROUTINES = 6

NEW_LINE = "\n"

FLOAT_COLUMNS = frozenset(
    {
        LATITUDE,
        LONGITUDE,
        TOTAL_FARE,
        TOTAL_TRAVEL_DISTANCE,
        DIRECT_DISTANCE,
        MAX,
        AVG,
    }
)

INT_COLUMNS = frozenset({TOTAL_STOPOVERS, CONVERTED_TRAVEL_DURATION})


def is_float_column(key: str) -> bool:
    """Return whether the column holds a 32-bit float."""
    return key in FLOAT_COLUMNS


def is_int_column(key: str) -> bool:
    """Return whether the column holds a 32-bit unsigned integer."""
    return key in INT_COLUMNS