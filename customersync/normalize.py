
"""Conversion of customer records into values that can be written to a sheet.

The store serializes timestamps as a mapping of whole seconds since the epoch plus
a sub-second nanosecond part, eg. {"seconds": 1700000000, "nanoseconds": 0}.
Depending on the serializer the keys may instead be "_seconds" and "_nanoseconds".
These get converted to ISO 8601 strings in UTC with millisecond precision,
eg. "2023-11-14T22:13:20.000Z". Everything else is left alone.
"""

import datetime
import math
from collections.abc import Mapping


SECONDS_KEYS = ("seconds", "_seconds")
NANOSECONDS_KEYS = ("nanoseconds", "_nanoseconds")

EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)


class MalformedTimestamp(ValueError):
	"""A value looked like a structured timestamp but couldn't be converted."""


def normalize(record):
	"""Return a copy of record with all timestamp values converted to ISO 8601 strings.
	Key order is preserved, as it may determine column order."""
	return {key: normalize_value(value) for key, value in record.items()}


def normalize_value(value):
	if is_timestamp(value):
		return format_millis(timestamp_to_millis(value))
	if isinstance(value, datetime.datetime):
		return format_datetime(value)
	return value


def is_timestamp(value):
	"""A structured timestamp is any mapping with a seconds field, even if that field is 0."""
	return isinstance(value, Mapping) and any(key in value for key in SECONDS_KEYS)


def _get_component(timestamp, keys):
	for key in keys:
		if key in timestamp:
			value = timestamp[key]
			# bool is an int subclass, but True seconds is certainly a mistake
			if isinstance(value, bool) or not isinstance(value, (int, float)):
				raise MalformedTimestamp("Timestamp field {} is not a number: {!r}".format(key, value))
			return value
	raise MalformedTimestamp("Timestamp {!r} is missing field {}".format(timestamp, keys[0]))


def timestamp_to_millis(timestamp):
	"""Convert a structured timestamp to integer milliseconds since the epoch.
	Fractional milliseconds are truncated towards zero."""
	seconds = _get_component(timestamp, SECONDS_KEYS)
	nanoseconds = _get_component(timestamp, NANOSECONDS_KEYS)
	try:
		millis = seconds * 1000 + nanoseconds / 1e6
	except OverflowError:
		# int seconds too large to become a float
		raise MalformedTimestamp("Timestamp {!r} is out of range".format(timestamp))
	if not math.isfinite(millis):
		raise MalformedTimestamp("Timestamp {!r} is not a finite time".format(timestamp))
	return math.trunc(millis)


def format_millis(millis):
	"""Format milliseconds since the epoch as eg. 2023-11-14T22:13:20.000Z"""
	try:
		dt = EPOCH + datetime.timedelta(milliseconds=millis)
	except OverflowError:
		raise MalformedTimestamp("Timestamp {}ms is out of range".format(millis))
	return format_datetime(dt)


def format_datetime(dt):
	"""Format a datetime as UTC with millisecond precision. Naive datetimes are assumed to be UTC."""
	if dt.tzinfo is not None:
		dt = dt.astimezone(datetime.timezone.utc)
	# not strftime, which doesn't zero-pad years before 1000 on all platforms
	return "{:04d}-{:02d}-{:02d}T{:02d}:{:02d}:{:02d}.{:03d}Z".format(
		dt.year, dt.month, dt.day,
		dt.hour, dt.minute, dt.second,
		dt.microsecond // 1000,
	)
