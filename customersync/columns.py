
import json
import logging
import math
from collections.abc import Mapping

from common.sheets import column_to_index, index_to_column


class LayoutError(ValueError):
	"""Configuration or data that doesn't fit the sheet's column layout."""


# Helpers for encoding cells
NONE_IS_EMPTY = lambda v: "" if v is None else v


def encode_cell(value):
	"""Encode a normalized value as something the sheets API accepts as a cell value.
	NaN and infinity have no representation in the API, so are rejected."""
	value = NONE_IS_EMPTY(value)
	if isinstance(value, (Mapping, list, tuple)):
		try:
			return json.dumps(value, sort_keys=True, separators=(",", ":"), allow_nan=False)
		except ValueError:
			raise LayoutError("Cannot write non-finite number in {!r}".format(value))
	if isinstance(value, float) and not math.isfinite(value):
		raise LayoutError("Cannot write non-finite number {!r}".format(value))
	return value


class ColumnLayout(object):
	"""Describes where a customer's row lives on the sheet.

	Rows span from key_column to last_column inclusive. The key column holds the customer id,
	and the following columns hold the record's fields: in the order given by columns,
	or if columns is None, in the order the record lists them.
	The first header_rows rows are never matched or written.
	"""

	def __init__(self, columns=None, key_column="A", last_column="O", header_rows=1):
		self.logger = logging.getLogger(type(self).__name__)
		if columns is not None and (
			not isinstance(columns, (list, tuple))
			or not all(isinstance(column, str) for column in columns)
		):
			raise LayoutError("Columns must be a list of field names, not {!r}".format(columns))
		self.columns = None if columns is None else list(columns)
		self.key_column = key_column.strip().upper()
		self.last_column = last_column.strip().upper()
		self.header_rows = header_rows

		try:
			key_index = column_to_index(self.key_column)
			last_index = column_to_index(self.last_column)
		except ValueError as e:
			raise LayoutError(str(e))
		if last_index < key_index:
			raise LayoutError("Last column {} comes before key column {}".format(self.last_column, self.key_column))
		if header_rows < 0:
			raise LayoutError("header_rows cannot be negative")
		self.width = last_index - key_index + 1

		if self.columns is not None:
			if len(set(self.columns)) != len(self.columns):
				raise LayoutError("Duplicate column names in {}".format(self.columns))
			if 1 + len(self.columns) > self.width:
				raise LayoutError("{} columns plus the key column do not fit in {}:{} ({} columns wide)".format(
					len(self.columns), self.key_column, self.last_column, self.width,
				))

	def to_row(self, customer_id, record):
		"""Build the row for a customer from a normalized record."""
		if self.columns is None:
			values = list(record.values())
		else:
			extra = [key for key in record if key not in self.columns]
			if extra:
				self.logger.warning("Customer {} has fields not in the sheet layout, ignoring: {}".format(
					customer_id, ", ".join(map(str, extra)),
				))
			values = [record.get(column) for column in self.columns]
		row = [customer_id] + [encode_cell(value) for value in values]
		if len(row) > self.width:
			raise LayoutError("Row for customer {} has {} cells, but the sheet layout only has room for {}".format(
				customer_id, len(row), self.width,
			))
		return row

	def pad(self, row):
		"""Extend row with empty cells to the full width, so writing it clears any old values."""
		return list(row) + [""] * (self.width - len(row))

	def key_range(self):
		return "{0}:{0}".format(self.key_column)

	def row_range(self, row_index):
		"""A1 range covering the full span of the given (1-based) row."""
		return "{key}{row}:{last}{row}".format(key=self.key_column, last=self.last_column, row=row_index)

	def table_range(self):
		"""The range that appended rows are added to the end of."""
		return "{}{}:{}".format(self.key_column, self.header_rows + 1, self.last_column)

	def header_range(self):
		"""The header row naming the columns, which is the last of the header rows."""
		if self.header_rows < 1:
			raise LayoutError("Layout has no header rows")
		return self.row_range(self.header_rows)

	def validate_header(self, header):
		"""Check that the sheet's header row names the declared columns, in order, after the key column.
		Does nothing if no columns were declared."""
		if self.columns is None:
			return
		found = [str(cell).strip() for cell in header[1:1 + len(self.columns)]]
		found += [""] * (len(self.columns) - len(found))
		mismatches = [
			"{} is {!r}, expected {!r}".format(
				index_to_column(column_to_index(self.key_column) + 1 + i), actual, expected,
			)
			for i, (actual, expected) in enumerate(zip(found, self.columns))
			if actual != expected
		]
		if mismatches:
			raise LayoutError("Sheet header does not match column layout: {}".format("; ".join(mismatches)))
