"""A place for common utilities shared by customersync components"""
import logging
from signal import SIGINT, SIGTERM

import gevent
import gevent.event

from .stats import PromLogCountsHandler


def serve_until_stopped(server, stop=None, stop_timeout=20):
	"""Start a gevent server and block until stop (a gevent Event) is set,
	then stop the server, giving in-flight requests up to stop_timeout seconds to finish.
	SIGTERM and SIGINT also set stop.

	The stop flag is separate from the server because stopping a server before start() has
	finished leaves it running. We only call stop() once start() has returned.
	"""
	if stop is None:
		stop = gevent.event.Event()
	handlers = [gevent.signal_handler(signum, stop.set) for signum in (SIGTERM, SIGINT)]
	try:
		logging.info("Starting up")
		server.start()
		logging.debug("Started")

		stop.wait()
		logging.info("Shutting down, waiting up to {}s for requests to finish".format(stop_timeout))
		server.stop(stop_timeout)
		logging.info("Gracefully shut down")
	finally:
		for handler in handlers:
			handler.cancel()
