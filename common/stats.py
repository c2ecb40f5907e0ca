import logging

import prometheus_client as prom


log_count = prom.Counter(
	"customersync_log_messages",
	"Count of messages logged, by level and logger",
	["level", "logger"],
)

class PromLogCountsHandler(logging.Handler):
	"""A logging handler that counts log messages by level and logger name.
	Loggers here are named after their class (eg. Reconciler), so this shows which component
	is warning or erroring without needing to search the logs."""
	def emit(self, record):
		log_count.labels(record.levelname, record.name).inc()

	@classmethod
	def install(cls):
		root_logger = logging.getLogger()
		root_logger.addHandler(cls())
