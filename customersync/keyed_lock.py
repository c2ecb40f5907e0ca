"""A set of locks, one per key.
Holding the lock for a key blocks other greenlets trying to hold the same key,
but not other keys. Locks only exist while something holds or waits on them."""

from contextlib import contextmanager

import gevent.lock


class KeyedLock:
	def __init__(self):
		# {key: [lock, number of holders and waiters]}
		self.locks = {}

	@contextmanager
	def hold(self, key):
		entry = self.locks.setdefault(key, [gevent.lock.BoundedSemaphore(), 0])
		entry[1] += 1
		try:
			with entry[0]:
				yield
		finally:
			entry[1] -= 1
			if entry[1] == 0:
				assert self.locks[key] is entry
				del self.locks[key]

	def __contains__(self, key):
		return key in self.locks
