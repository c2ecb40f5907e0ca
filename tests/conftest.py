import gevent
import pytest
import requests

from customersync.store import RowStore


class FakeRowStore(RowStore):
	"""In-memory row store. rows[0] is sheet row 1.
	With yield_after_find, find() lets other greenlets run before returning,
	like a real remote call would."""

	def __init__(self, rows=None, yield_after_find=False):
		self.rows = [list(row) for row in rows or []]
		self.yield_after_find = yield_after_find
		self.calls = []

	def find(self):
		self.calls.append(("find",))
		keys = [row[0] if row else "" for row in self.rows]
		if self.yield_after_find:
			gevent.sleep(0)
		return keys

	def append(self, row):
		self.calls.append(("append", list(row)))
		self.rows.append(list(row))

	def overwrite(self, row_index, row):
		self.calls.append(("overwrite", row_index, list(row)))
		self.rows[row_index - 1] = list(row)

	def delete_rows(self, row_index, count=1):
		self.calls.append(("delete_rows", row_index, count))
		del self.rows[row_index - 1:row_index - 1 + count]

	def writes(self):
		return [call for call in self.calls if call[0] != "find"]


HEADER = ["id", "name", "since"]


@pytest.fixture
def store():
	return FakeRowStore([HEADER])


class FakeResponse:
	def __init__(self, data=None, status_code=200, content=b""):
		self.data = {} if data is None else data
		self.status_code = status_code
		self.content = content

	def json(self):
		return self.data

	def raise_for_status(self):
		if self.status_code >= 400:
			raise requests.HTTPError("{} error".format(self.status_code), response=self)


class FakeAPIClient:
	"""Stands in for GoogleAPIClient. Responds to each request with the next queued response."""

	def __init__(self, *responses):
		self.responses = list(responses)
		self.requests = []

	def request(self, method, url, **kwargs):
		self.requests.append((method, url, kwargs))
		response = self.responses.pop(0)
		if isinstance(response, Exception):
			raise response
		return response
