import datetime
import logging

import gevent
import gevent.event
import prometheus_client as prom
import pytest
import requests
import requests.adapters
import requests.models

import common
from common.requests import InstrumentedSession
from common.stats import PromLogCountsHandler


def sample(name, /, **labels):
	return prom.REGISTRY.get_sample_value(name, labels) or 0


class StubAdapter(requests.adapters.BaseAdapter):
	"""Answers every request with the given status, or raises the given error, without any network."""

	def __init__(self, status_code=200, error=None):
		super().__init__()
		self.status_code = status_code
		self.error = error

	def send(self, request, **kwargs):
		if self.error is not None:
			raise self.error
		response = requests.models.Response()
		response.status_code = self.status_code
		response.request = request
		response.url = request.url
		response._content = b"{}"
		response.elapsed = datetime.timedelta(seconds=0.01)
		return response

	def close(self):
		pass


def make_session(**kwargs):
	session = InstrumentedSession()
	session.mount("https://", StubAdapter(**kwargs))
	return session


def test_session_records_latency_by_call_name():
	before = sample("sheets_api_request_latency_count", name="append_rows", method="POST", status="200")
	resp = make_session().request("POST", "https://sheets.googleapis.com/v4/x", metric_name="append_rows")
	assert resp.status_code == 200
	after = sample("sheets_api_request_latency_count", name="append_rows", method="POST", status="200")
	assert after == before + 1
	assert sample("sheets_api_request_concurrency", name="append_rows", method="POST") == 0


def test_session_records_http_status():
	before = sample("sheets_api_request_latency_count", name="get_rows", method="GET", status="429")
	resp = make_session(status_code=429).request("GET", "https://sheets.googleapis.com/v4/x", metric_name="get_rows")
	assert resp.status_code == 429
	assert sample("sheets_api_request_latency_count", name="get_rows", method="GET", status="429") == before + 1


def test_session_records_errors():
	labels = dict(name="other", method="GET", error="ConnectionError")
	before = sample("sheets_api_request_errors_total", **labels)
	session = make_session(error=requests.ConnectionError("connection reset"))
	with pytest.raises(requests.ConnectionError):
		session.request("GET", "https://sheets.googleapis.com/v4/x")
	assert sample("sheets_api_request_errors_total", **labels) == before + 1
	assert sample("sheets_api_request_concurrency", name="other", method="GET") == 0


def test_log_counts_by_level_and_logger():
	logger = logging.getLogger("LogCountTest")
	handler = PromLogCountsHandler()
	logger.addHandler(handler)
	try:
		before = sample("customersync_log_messages_total", level="WARNING", logger="LogCountTest")
		logger.warning("first")
		logger.warning("second")
		logger.debug("not counted, below logger level")
	finally:
		logger.removeHandler(handler)
	assert sample("customersync_log_messages_total", level="WARNING", logger="LogCountTest") == before + 2


class FakeServer:
	def __init__(self):
		self.calls = []

	def start(self):
		self.calls.append("start")

	def stop(self, timeout):
		self.calls.append(("stop", timeout))


def test_serve_until_stopped():
	server = FakeServer()
	stop = gevent.event.Event()
	gevent.spawn_later(0.01, stop.set)
	common.serve_until_stopped(server, stop, stop_timeout=5)
	assert server.calls == ["start", ("stop", 5)]
