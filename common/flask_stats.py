"""
Code shared between components to gather stats from flask methods.
Note that this code requires flask, but the common module as a whole does not
to avoid needing to install them for components that don't need it.
"""

import functools

from flask import request
from flask import g as request_store
from monotonic import monotonic
import prometheus_client as prom


LATENCY_HELP = "Time taken to run the request handler and create a response"
# buckets: a request is at most a few sheets API round trips, up to 2min when the API is struggling.
LATENCY_BUCKETS = [.001, .005, .01, .05, .1, .5, 1, 5, 10, 30, 60, 120]
request_latency = prom.Histogram(
	'http_request_latency', LATENCY_HELP,
	['endpoint', 'method', 'status'],
	buckets=LATENCY_BUCKETS,
)

SIZE_HELP = 'Size in bytes of response body for non-chunked responses'
# buckets: powers of 4 up to 1MiB (1, 4, 16, 64, 256, 1Ki, 4Ki, ...)
SIZE_BUCKETS = [4**i for i in range(11)]
response_size = prom.Histogram(
	'http_response_size', SIZE_HELP,
	['endpoint', 'method', 'status'],
	buckets=SIZE_BUCKETS,
)

CONCURRENT_HELP = 'Number of requests currently ongoing'
request_concurrency = prom.Gauge(
	'http_request_concurrency', CONCURRENT_HELP,
	['endpoint', 'method'],
)


def request_stats(fn):
	"""Decorator that wraps a handler func to collect metrics, labelled with
	'endpoint' (the func's name), method and response status.
	Handler args are deliberately not used as labels, as they include unbounded values
	such as customer ids."""
	endpoint = fn.__name__

	@functools.wraps(fn)
	def _stats(**kwargs):
		request_store.endpoint = endpoint
		request_store.method = request.method
		request_concurrency.labels(endpoint=endpoint, method=request.method).inc()
		request_store.start_time = monotonic()
		return fn(**kwargs)

	return _stats


def after_request(response):
	"""Must be registered to run after requests. Finishes tracking the request
	and logs most of the metrics.
	We do it in this way, instead of inside the request_stats wrapper, because it lets flask
	normalize the handler result into a Response object.
	"""
	if 'endpoint' not in request_store:
		return response # untracked handler

	end_time = monotonic()
	endpoint = request_store.endpoint
	method = request_store.method

	request_concurrency.labels(endpoint=endpoint, method=method).dec()

	status = str(response.status_code)
	request_latency.labels(endpoint=endpoint, method=method, status=status).observe(end_time - request_store.start_time)
	size = response.calculate_content_length()
	if size is not None:
		response_size.labels(endpoint=endpoint, method=method, status=status).observe(size)

	return response
