"""A requests Session that records metrics about calls to Google's APIs."""

import requests.sessions
import prometheus_client as prom
from monotonic import monotonic

request_latency = prom.Histogram(
	'sheets_api_request_latency',
	'Time taken for a call to a Google API to return response headers, by call name and status. '
	'Status = "error" means no response was received.',
	['name', 'method', 'status'],
	buckets=[.01, .05, .1, .25, .5, 1, 2.5, 5, 10, 30, 60, 120],
)

request_errors = prom.Counter(
	'sheets_api_request_errors',
	'Number of calls to a Google API that failed without a response, by exception type',
	['name', 'method', 'error'],
)

request_concurrency = prom.Gauge(
	'sheets_api_request_concurrency',
	'Number of calls to a Google API currently waiting on a response',
	['name', 'method'],
)


class InstrumentedSession(requests.sessions.Session):
	"""Records latency, errors and concurrency for every request.
	Callers pass a metric_name kwarg naming the call (eg. "get_rows"), which becomes the 'name' label.
	Unnamed calls are recorded with name "other".
	"""

	def request(self, method, url, *args, **kwargs):
		name = kwargs.pop('metric_name', None) or 'other'

		start = monotonic() # only used if there's no response to take the elapsed time from
		try:
			with request_concurrency.labels(name, method).track_inprogress():
				response = super().request(method, url, *args, **kwargs)
		except Exception as e:
			request_latency.labels(name, method, "error").observe(monotonic() - start)
			request_errors.labels(name, method, type(e).__name__).inc()
			raise

		request_latency.labels(name, method, str(response.status_code)).observe(response.elapsed.total_seconds())
		return response
