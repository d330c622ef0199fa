"""Conversion of ISO-8601-like travel durations to minutes."""

import logging
import re

logger = logging.getLogger(__name__)

TRAVEL_DURATION_PREFIX = "P"
TRAVEL_TIME_PREFIX = "T"
TRAVEL_DURATION_DAYS = "D"
TRAVEL_DURATION_HOUR = "H"
TRAVEL_DURATION_MINUTE = "M"

_MINUTES_IN_HOUR = 60
_HOURS_IN_DAY = 24
_INTEGER = re.compile(r"[+-]?[0-9]+")


def _atoi(text: str) -> int | None:
    return int(text) if _INTEGER.fullmatch(text) else None


def _only_minutes(text: str) -> int:
    if text.startswith(TRAVEL_TIME_PREFIX):
        text = text[len(TRAVEL_TIME_PREFIX):]
    else:
        logger.warning(
            "TravelDurationConversion | Prefix '%s' not found in str '%s'",
            TRAVEL_TIME_PREFIX,
            text,
        )
    minutes = _atoi(text)
    if minutes is None:
        logger.warning(
            "TravelDurationConversion | Error converting minutes duration, will be sent as zero"
        )
        return 0
    return minutes


def _only_days(text: str) -> int:
    days = _atoi(text)
    if days is None:
        raise ValueError(f"day conversion error: invalid value {text!r}")
    return days * _HOURS_IN_DAY * _MINUTES_IN_HOUR


def _hours_and_minutes(hours_text: str, minutes_text: str) -> int:
    hours_text = hours_text.removeprefix(TRAVEL_TIME_PREFIX)
    hours = 0
    if hours_text:
        parsed = _atoi(hours_text)
        if parsed is None:
            raise ValueError(f"hour conversion error: invalid value {hours_text!r}")
        hours = parsed

    minutes = 0
    if minutes_text.endswith(TRAVEL_DURATION_MINUTE):
        parsed = _atoi(minutes_text[: -len(TRAVEL_DURATION_MINUTE)])
        if parsed is None:
            logger.warning(
                "TravelDurationConversion | Error converting minutes duration, will be sent as zero"
            )
        else:
            minutes = parsed
    return hours * _MINUTES_IN_HOUR + minutes


def convert_travel_duration_to_minutes(duration: str) -> int:
    """Convert a duration such as PT1M, PT1H, P1DT or PT3H18M to minutes.

    Raises ValueError when the format is not understood.
    """
    body = duration.removeprefix(TRAVEL_DURATION_PREFIX)
    before, found, _ = body.partition(TRAVEL_DURATION_DAYS)
    if found:
        return _only_days(before)

    hours, found, minutes = before.partition(TRAVEL_DURATION_HOUR)
    if found:
        return _hours_and_minutes(hours, minutes)

    minutes, found, _ = before.partition(TRAVEL_DURATION_MINUTE)
    if found:
        return _only_minutes(minutes)

    logger.warning("TravelDurationConversion | Unknown time format '%s'", duration)
    raise ValueError(f"unknown format: {duration}")