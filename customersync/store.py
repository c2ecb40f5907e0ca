
import logging
from contextlib import contextmanager

from requests import HTTPError, RequestException

from .columns import LayoutError


class TransientRemoteError(Exception):
	"""A call to the remote row store failed, eg. due to network, auth or quota problems.
	Retrying later may succeed."""


class RowStore:
	"""A common interface for a remote table of rows, addressed by 1-based row index.
	Only the rows of a single sheet are visible, and the first cell of each row is its key."""

	def find(self):
		"""Read the whole key column, returning a list of key values with one entry per row
		from the top of the sheet (including header rows). Empty keys are returned as ""."""
		raise NotImplementedError

	def append(self, row):
		"""Add row to the end of the table."""
		raise NotImplementedError

	def overwrite(self, row_index, row):
		"""Replace the full row at row_index with row."""
		raise NotImplementedError

	def delete_rows(self, row_index, count=1):
		"""Delete count rows starting at row_index. Following rows shift up."""
		raise NotImplementedError


@contextmanager
def remote_errors(action):
	"""Convert requests exceptions into TransientRemoteError"""
	try:
		yield
	except RequestException as e:
		# for HTTPErrors, http response body includes the more detailed error
		detail = ''
		if isinstance(e, HTTPError) and e.response is not None:
			detail = ": {}".format(e.response.content)
		raise TransientRemoteError("Failed to {}: {}{}".format(action, e, detail)) from e


class SheetsRowStore(RowStore):
	"""A RowStore backed by one worksheet of a Google Sheet."""

	def __init__(self, sheets, spreadsheet_id, sheet_name, layout, sheet_id=None):
		self.logger = logging.getLogger(type(self).__name__).getChild(sheet_name)
		self.sheets = sheets
		self.spreadsheet_id = spreadsheet_id
		self.sheet_name = sheet_name
		self.layout = layout
		# numeric id of the worksheet, needed for deletes. Looked up on first use if not given.
		self.sheet_id = sheet_id

	def find(self):
		with remote_errors("read key column"):
			rows = self.sheets.get_rows(self.spreadsheet_id, self.sheet_name, self.layout.key_range())
		# Empty cells at the end of a row are omitted, so a row with an empty key is [].
		return [row[0] if row else "" for row in rows]

	def append(self, row):
		self.logger.debug("Appending row {}".format(row))
		with remote_errors("append row"):
			self.sheets.append_rows(self.spreadsheet_id, self.sheet_name, self.layout.table_range(), [row])

	def overwrite(self, row_index, row):
		self.check_writable(row_index)
		self.logger.debug("Overwriting row {} with {}".format(row_index, row))
		with remote_errors("write row {}".format(row_index)):
			self.sheets.write_rows(
				self.spreadsheet_id, self.sheet_name,
				self.layout.row_range(row_index), [self.layout.pad(row)],
			)

	def delete_rows(self, row_index, count=1):
		self.check_writable(row_index)
		sheet_id = self.resolve_sheet_id()
		self.logger.debug("Deleting {} row(s) from row {}".format(count, row_index))
		with remote_errors("delete row {}".format(row_index)):
			# API takes 0-based indexes with an exclusive end
			self.sheets.delete_rows(self.spreadsheet_id, sheet_id, row_index - 1, row_index - 1 + count)

	def resolve_sheet_id(self):
		"""Return the numeric worksheet id, looking it up by name the first time.
		A missing worksheet is a configuration problem, so raises LayoutError."""
		if self.sheet_id is None:
			with remote_errors("look up worksheet id"):
				try:
					self.sheet_id = self.sheets.get_sheet_id(self.spreadsheet_id, self.sheet_name)
				except KeyError as e:
					raise LayoutError(e.args[0])
		return self.sheet_id

	def read_header(self):
		"""Return the header row naming the columns"""
		with remote_errors("read header"):
			rows = self.sheets.get_rows(self.spreadsheet_id, self.sheet_name, self.layout.header_range())
		return rows[0] if rows else []

	def check_writable(self, row_index):
		if row_index <= self.layout.header_rows:
			raise ValueError("Refusing to write to header row {}".format(row_index))
