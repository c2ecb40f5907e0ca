
import hmac
import json
import logging
from collections import namedtuple
from collections.abc import Mapping

import argh
import flask
import gevent.backdoor
from gevent.pywsgi import WSGIServer
from monotonic import monotonic
import prometheus_client as prom

import common
from common.flask_stats import request_stats, after_request
from common.googleapis import GoogleAPIClient
from common.sheets import Sheets

from .columns import ColumnLayout, LayoutError
from .normalize import MalformedTimestamp
from .reconcile import Reconciler
from .store import SheetsRowStore, TransientRemoteError

app = flask.Flask('customersync')
app.after_request(after_request)
# set by serve()
app.sync = None
app.webhook_token = None

sync_errors = prom.Counter(
	'customersync_errors',
	'Number of changes that could not be synced to the sheet, by error type',
	['error'],
)

sync_duration = prom.Histogram(
	'customersync_duration',
	'Time taken to sync a single change to the sheet',
	['error'],
)


# A change to the customer record at /customers/{customer_id}.
# before and after are the record (a mapping) before and after the change, or None if it didn't exist.
ChangeEvent = namedtuple("ChangeEvent", ["customer_id", "before", "after"])

# Result of handling a ChangeEvent. Exactly one of operation (a RowOperation) and error is set.
class ChangeResult(namedtuple("ChangeResult", ["operation", "error"])):
	@property
	def ok(self):
		return self.error is None


def parse_event(customer_id, body):
	"""Build a ChangeEvent from a JSON body {"before": RECORD or null, "after": RECORD or null}.
	Raises ValueError if the body is not of that shape."""
	if not customer_id:
		raise ValueError("Customer id must not be empty")
	if not isinstance(body, Mapping):
		raise ValueError("Body must be a JSON object")
	unknown = set(body) - {"before", "after"}
	if unknown:
		raise ValueError("Unknown keys in body: {}".format(", ".join(sorted(unknown))))
	for key in ("before", "after"):
		value = body.get(key)
		if value is not None and not isinstance(value, Mapping):
			raise ValueError("{} must be an object or null".format(key))
	return ChangeEvent(customer_id, body.get("before"), body.get("after"))


class CustomerSync(object):
	"""Entry point for change events. Each event is reconciled independently and
	failures are logged and dropped, on the basis that the next change to the same customer
	will bring the sheet back in line."""

	def __init__(self, reconciler):
		self.logger = logging.getLogger(type(self).__name__)
		self.reconciler = reconciler

	def on_customer_change(self, event):
		"""Sync one ChangeEvent to the sheet. Never raises, returns a ChangeResult."""
		start = monotonic()
		try:
			operation = self.reconciler.reconcile(
				event.customer_id, event.before is not None, event.after,
			)
		except Exception as e:
			if isinstance(e, (MalformedTimestamp, LayoutError)):
				# problem with the record, not worth a traceback
				self.logger.error("Bad record for customer {}, not syncing: {}".format(event.customer_id, e))
			else:
				self.logger.exception("Failed to sync customer {}".format(event.customer_id))
			error = type(e).__name__
			sync_errors.labels(error).inc()
			sync_duration.labels(error).observe(monotonic() - start)
			return ChangeResult(None, e)
		sync_duration.labels('').observe(monotonic() - start)
		return ChangeResult(operation, None)


def check_token(request):
	"""Returns True if no token is required, or the request has the right bearer token."""
	if app.webhook_token is None:
		return True
	header = request.headers.get('Authorization', '')
	scheme, _, token = header.partition(' ')
	if scheme.lower() != 'bearer':
		return False
	return hmac.compare_digest(token.strip().encode(), app.webhook_token.encode())


@app.route('/metrics')
@request_stats
def metrics():
	"""Expose Prometheus metrics."""
	return prom.generate_latest()


@app.route('/customers/<customer_id>', methods=['POST'])
@request_stats
def customer_changed(customer_id):
	"""Receives a change to a customer record and syncs it to the sheet.
	Body is a JSON object {"before": RECORD or null, "after": RECORD or null}."""
	if not check_token(flask.request):
		return 'Invalid or missing token', 401
	try:
		event = parse_event(customer_id, flask.request.get_json(silent=True))
	except ValueError as e:
		return str(e), 400

	result = app.sync.on_customer_change(event)
	if result.ok:
		return flask.jsonify(
			action=result.operation.action,
			row=result.operation.row_index,
		)
	if isinstance(result.error, (MalformedTimestamp, LayoutError)):
		return str(result.error), 400
	if isinstance(result.error, TransientRemoteError):
		return 'Failed to update sheet', 502
	return 'Internal error', 500


def build_sync(
	creds, spreadsheet_id, sheet_name, sheet_id, key_column, last_column,
	columns, header_rows, skip_header_check, no_serialize,
):
	"""Set up the sheets client, layout and reconciler from command line options."""
	layout = ColumnLayout(columns, key_column, last_column, header_rows)
	client = GoogleAPIClient.from_creds_file(creds)
	store = SheetsRowStore(Sheets(client), spreadsheet_id, sheet_name, layout, sheet_id)

	# Look this up now so a wrong sheet name fails startup, not the first delete.
	logging.info("Using worksheet {!r} with id {}".format(sheet_name, store.resolve_sheet_id()))

	if columns is None:
		logging.warning("No columns given, fields will be written in whatever order each record lists them")
	elif skip_header_check or header_rows < 1:
		logging.info("Not checking sheet header against columns")
	else:
		# fails startup with LayoutError if sheet doesn't match
		layout.validate_header(store.read_header())
		logging.info("Sheet header matches columns {}".format(", ".join(columns)))

	return CustomerSync(Reconciler(store, layout, serialize=not no_serialize))


def sheet_options(fn):
	"""Options shared by all commands that talk to the sheet"""
	options = [
		argh.arg('creds', help='Path to a JSON file containing "client_id", "client_secret" and "refresh_token"'),
		argh.arg('spreadsheet-id', help='The id of the Google Sheet to write to'),
		argh.arg('--sheet-name', help='Name of the worksheet holding customer rows'),
		argh.arg('--sheet-id', type=int, help='Numeric id of the worksheet, used for deleting rows. Looked up by name if not given.'),
		argh.arg('--key-column', help='Column holding customer ids. Rows are written starting from this column.'),
		argh.arg('--last-column', help='Last column of a customer row. Writes to a row clear everything up to this column.'),
		argh.arg('--columns', type=json.loads, help=
			'JSON list of record fields, in the order they appear in the sheet after the key column. '
			'If not given, fields are written in the order each record has them.'
		),
		argh.arg('--header-rows', type=int, help='Number of header rows at the top of the sheet, which are never written.'),
		argh.arg('--skip-header-check', help="Don't check the sheet's header row matches --columns on startup"),
		argh.arg('--no-serialize', help=
			'Allow changes to the same customer to be synced concurrently. '
			'This can cause duplicate rows if a new customer is changed again quickly.'
		),
	]
	for option in reversed(options):
		fn = option(fn)
	return fn


@sheet_options
@argh.arg('--host', help='Address or socket server will listen to. Default is 0.0.0.0 (everything on the local machine).')
@argh.arg('--port', help='Port server will listen on. Default is 8006.')
@argh.arg('--webhook-token', help='If given, change events must carry an "Authorization: Bearer TOKEN" header')
@argh.arg('--backdoor-port', help='Port for gevent.backdoor access. By default disabled.')
def serve(
	creds, spreadsheet_id, sheet_name='Sheet1', sheet_id=None, key_column='A', last_column='O',
	columns=None, header_rows=1, skip_header_check=False, no_serialize=False,
	host='0.0.0.0', port=8006, webhook_token=None, backdoor_port=0,
):
	"""
	Customer sync receives changes to customer records as webhook calls to POST /customers/ID
	and mirrors them into rows of a Google Sheet, one row per customer.

	Each change is synced on its own, and failures are logged but not retried.
	A later change to the same customer will overwrite the whole row, fixing it up.
	"""
	common.PromLogCountsHandler.install()

	app.sync = build_sync(
		creds, spreadsheet_id, sheet_name, sheet_id, key_column, last_column,
		columns, header_rows, skip_header_check, no_serialize,
	)
	app.webhook_token = webhook_token
	if webhook_token is None:
		logging.warning('Not authenticating change events')

	server = WSGIServer((host, port), app)

	if backdoor_port:
		gevent.backdoor.BackdoorServer(('127.0.0.1', backdoor_port), locals=locals()).start()

	common.serve_until_stopped(server)


@sheet_options
@argh.arg('customer-id', help='Id of the customer to sync')
@argh.arg('--record', type=json.loads, help='JSON object of the customer record. Omit to remove the row for a deleted customer.')
def apply(
	creds, spreadsheet_id, customer_id, record=None,
	sheet_name='Sheet1', sheet_id=None, key_column='A', last_column='O',
	columns=None, header_rows=1, skip_header_check=False, no_serialize=False,
):
	"""Sync a single customer by hand, eg. to fix up a row after a failed sync.
	With --record, the customer's row is added or overwritten, otherwise it is deleted."""
	sync = build_sync(
		creds, spreadsheet_id, sheet_name, sheet_id, key_column, last_column,
		columns, header_rows, skip_header_check, no_serialize,
	)
	# We don't know the previous state, so assume it existed. Deleting a missing row is a no-op anyway.
	result = sync.on_customer_change(ChangeEvent(customer_id, {}, record))
	if not result.ok:
		raise result.error
	operation = result.operation
	return "{} {}".format(operation.action, "" if operation.row_index is None else "row {}".format(operation.row_index)).strip()
