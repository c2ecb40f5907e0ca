
import logging


class Sheets(object):
	"""Manages Google Sheets API operations.
	Takes a GoogleAPIClient (or anything with a compatible request() method)."""

	BASE_URL = 'https://sheets.googleapis.com/v4/spreadsheets'

	def __init__(self, client):
		self.logger = logging.getLogger(type(self).__name__)
		self.client = client

	def get_rows(self, spreadsheet_id, sheet_name, range=None):
		"""Return a list of rows, where each row is a list of the values of each column.
		Range optionally restricts returned rows, and uses A1 format, eg. "A1:B5".
		Sheets omits trailing empty rows and cells, so rows may be shorter than the range
		and the list may be empty.
		"""
		range = self.qualify_range(sheet_name, range)
		resp = self.client.request('GET',
			'{}/{}/values/{}'.format(self.BASE_URL, spreadsheet_id, range),
			metric_name='get_rows',
		)
		resp.raise_for_status()
		data = resp.json()
		return data.get('values', [])

	def append_rows(self, spreadsheet_id, sheet_name, range, rows):
		"""Append rows after the last non-empty row of the table found in range."""
		range = self.qualify_range(sheet_name, range)
		resp = self.client.request('POST',
			'{}/{}/values/{}:append'.format(self.BASE_URL, spreadsheet_id, range),
			params={
				"valueInputOption": "RAW",
			},
			json={
				"range": range,
				"majorDimension": "ROWS",
				"values": rows,
			},
			metric_name='append_rows',
		)
		resp.raise_for_status()

	def write_rows(self, spreadsheet_id, sheet_name, range, rows):
		"""Overwrite the cells in range with the given rows."""
		range = self.qualify_range(sheet_name, range)
		resp = self.client.request('PUT',
			'{}/{}/values/{}'.format(self.BASE_URL, spreadsheet_id, range),
			params={
				"valueInputOption": "RAW",
			},
			json={
				"range": range,
				"majorDimension": "ROWS",
				"values": rows,
			},
			metric_name='write_rows',
		)
		resp.raise_for_status()

	def get_sheet_id(self, spreadsheet_id, sheet_name):
		"""Look up the numeric id of a worksheet by its title. Row deletion needs the id,
		not the name."""
		resp = self.client.request('GET',
			'{}/{}'.format(self.BASE_URL, spreadsheet_id),
			params={
				"fields": "sheets.properties",
			},
			metric_name='get_sheet_id',
		)
		resp.raise_for_status()
		for sheet in resp.json().get('sheets', []):
			properties = sheet['properties']
			if properties['title'] == sheet_name:
				return properties['sheetId']
		raise KeyError("Spreadsheet {} has no worksheet named {!r}".format(spreadsheet_id, sheet_name))

	def delete_rows(self, spreadsheet_id, sheet_id, start_index, end_index):
		"""Delete rows [start_index, end_index) (0-based), shifting later rows up."""
		resp = self.client.request('POST',
			'{}/{}:batchUpdate'.format(self.BASE_URL, spreadsheet_id),
			json={
				"requests": [{
					"deleteDimension": {
						"range": {
							"sheetId": sheet_id,
							"dimension": "ROWS",
							"startIndex": start_index,
							"endIndex": end_index,
						},
					},
				}],
			},
			metric_name='delete_rows',
		)
		resp.raise_for_status()

	def qualify_range(self, sheet_name, range=None):
		"""Prefix an A1 range with the sheet name, eg. 'My Sheet'!A1:B5"""
		sheet_name = "'{}'".format(sheet_name.replace("'", "''"))
		if range:
			return "{}!{}".format(sheet_name, range)
		return sheet_name


def index_to_column(index):
	"""For a given column index, convert to a column description, eg. 0 -> A, 1 -> B, 26 -> AA."""
	if index < 0:
		raise ValueError("Column index cannot be negative: {}".format(index))
	# Columns are "bijective base 26": there is no zero digit, so Z is followed by AA.
	letters = []
	index += 1
	while index:
		index, digit = divmod(index - 1, 26)
		letters.append(chr(ord('A') + digit))
	return ''.join(reversed(letters))


def column_to_index(column):
	"""Inverse of index_to_column, eg. A -> 0, AA -> 26."""
	column = column.strip().upper()
	if not column or not all('A' <= c <= 'Z' for c in column):
		raise ValueError("Invalid column: {!r}".format(column))
	index = 0
	for c in column:
		index = index * 26 + (ord(c) - ord('A') + 1)
	return index - 1
