
import logging
from collections import namedtuple
from contextlib import nullcontext

import prometheus_client as prom

from .keyed_lock import KeyedLock
from .normalize import normalize

rows_changed = prom.Counter(
	'customersync_rows_changed',
	'Number of reconciliations, by the action taken: append, update, delete or noop',
	['action'],
)

duplicate_rows = prom.Counter(
	'customersync_duplicate_rows',
	'Number of times a scan found more than one row for the same customer',
)


APPEND = "append"
UPDATE = "update"
DELETE = "delete"
NOOP = "noop"

# What a reconciliation did. row_index is the 1-based sheet row that was written or deleted
# (None for appends and no-ops), values the row that was written (None for deletes and no-ops).
RowOperation = namedtuple("RowOperation", ["action", "row_index", "values"])


class Reconciler(object):
	"""Projects the state of a customer record onto a row store.

	Each call to reconcile() reads the key column to find the customer's row,
	then makes at most one write: appending a new row, overwriting the existing one,
	or deleting it.

	With serialize=True (the default), reconciliations for the same customer wait for each other,
	so two quick changes to a new customer can't both see no row and both append.
	This only covers reconciliations within this process.
	"""

	def __init__(self, store, layout, serialize=True):
		self.logger = logging.getLogger(type(self).__name__)
		self.store = store
		self.layout = layout
		self.locks = KeyedLock() if serialize else None

	def reconcile(self, customer_id, before_exists, after_record):
		"""Sync the sheet for a customer whose record was changed.
		before_exists is whether the record existed before the change,
		after_record is the record after the change, or None if it was deleted.
		Returns a RowOperation.
		"""
		# Build the row before touching the sheet, so a bad record fails without any remote calls.
		row = None
		if after_record is not None:
			row = self.layout.to_row(customer_id, normalize(after_record))
		elif not before_exists:
			# Nothing before or after. Shouldn't happen, but nothing to do either.
			self.logger.info("Customer {} did not exist before or after change, ignoring".format(customer_id))
			return self._done(RowOperation(NOOP, None, None))

		with self._hold(customer_id):
			row_index = self.find_row(customer_id)

			if row is not None:
				if row_index is None:
					self.logger.info("Adding new row for customer {}".format(customer_id))
					self.store.append(row)
					return self._done(RowOperation(APPEND, None, row))
				self.logger.info("Updating row {} for customer {}".format(row_index, customer_id))
				self.store.overwrite(row_index, row)
				return self._done(RowOperation(UPDATE, row_index, row))

			if row_index is None:
				self.logger.info("Customer {} deleted but has no row, nothing to do".format(customer_id))
				return self._done(RowOperation(NOOP, None, None))
			self.logger.info("Deleting row {} for deleted customer {}".format(row_index, customer_id))
			self.store.delete_rows(row_index, 1)
			return self._done(RowOperation(DELETE, row_index, None))

	def find_row(self, customer_id):
		"""Scan the key column for the customer and return the 1-based row index of the first match,
		or None. Any further matches are left alone."""
		keys = self.store.find()
		matches = [
			index + 1 for index, key in enumerate(keys)
			# Header rows are skipped, even if one happens to hold a matching value.
			if index >= self.layout.header_rows and key == customer_id
		]
		if not matches:
			return None
		if len(matches) > 1:
			self.logger.warning("Duplicate rows for customer {}: {}. Only row {} will be changed.".format(
				customer_id, ", ".join(map(str, matches)), matches[0],
			))
			duplicate_rows.inc()
		return matches[0]

	def _hold(self, customer_id):
		if self.locks is None:
			return nullcontext()
		return self.locks.hold(customer_id)

	def _done(self, operation):
		rows_changed.labels(operation.action).inc()
		return operation
