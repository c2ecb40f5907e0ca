import pytest
import requests

from common.sheets import Sheets, column_to_index, index_to_column
from customersync.columns import ColumnLayout, LayoutError
from customersync.store import SheetsRowStore, TransientRemoteError

from conftest import FakeAPIClient, FakeResponse


def make_store(*responses, **layout_kwargs):
	client = FakeAPIClient(*responses)
	layout = ColumnLayout(**layout_kwargs)
	store = SheetsRowStore(Sheets(client), "SPREADSHEET", "Customers", layout)
	return client, store


@pytest.mark.parametrize("index,column", [
	(0, "A"), (1, "B"), (25, "Z"), (26, "AA"), (27, "AB"), (701, "ZZ"), (702, "AAA"),
])
def test_column_conversion(index, column):
	assert index_to_column(index) == column
	assert column_to_index(column) == index


def test_qualify_range_quotes_sheet_name():
	sheets = Sheets(FakeAPIClient())
	assert sheets.qualify_range("Customers", "A:A") == "'Customers'!A:A"
	assert sheets.qualify_range("Bob's list") == "'Bob''s list'"


def test_find_reads_key_column():
	client, store = make_store(FakeResponse({"values": [["id"], ["cust-1"], [], ["cust-2"]]}))
	assert store.find() == ["id", "cust-1", "", "cust-2"]
	method, url, kwargs = client.requests[0]
	assert method == "GET"
	assert url == "https://sheets.googleapis.com/v4/spreadsheets/SPREADSHEET/values/'Customers'!A:A"
	assert kwargs["metric_name"] == "get_rows"


def test_find_on_empty_sheet():
	client, store = make_store(FakeResponse({"range": "'Customers'!A1:A1000"}))
	assert store.find() == []


def test_append():
	client, store = make_store(FakeResponse(), last_column="J")
	store.append(["cust-1", "Ann"])
	method, url, kwargs = client.requests[0]
	assert method == "POST"
	assert url.endswith("/SPREADSHEET/values/'Customers'!A2:J:append")
	assert kwargs["params"] == {"valueInputOption": "RAW"}
	assert kwargs["json"]["values"] == [["cust-1", "Ann"]]


def test_overwrite_pads_full_row():
	client, store = make_store(FakeResponse(), last_column="D")
	store.overwrite(5, ["cust-1", "Ann"])
	method, url, kwargs = client.requests[0]
	assert method == "PUT"
	assert url.endswith("/SPREADSHEET/values/'Customers'!A5:D5")
	assert kwargs["json"]["values"] == [["cust-1", "Ann", "", ""]]


def test_delete_looks_up_sheet_id_once():
	sheets = {"sheets": [
		{"properties": {"title": "Other", "sheetId": 0}},
		{"properties": {"title": "Customers", "sheetId": 1234}},
	]}
	client, store = make_store(FakeResponse(sheets), FakeResponse(), FakeResponse())
	store.delete_rows(5)
	store.delete_rows(3, 2)
	assert [r[1].rsplit("/", 1)[-1] for r in client.requests] == [
		"SPREADSHEET", "SPREADSHEET:batchUpdate", "SPREADSHEET:batchUpdate",
	]
	assert client.requests[1][2]["json"]["requests"][0]["deleteDimension"]["range"] == {
		"sheetId": 1234, "dimension": "ROWS", "startIndex": 4, "endIndex": 5,
	}
	assert client.requests[2][2]["json"]["requests"][0]["deleteDimension"]["range"]["startIndex"] == 2
	assert client.requests[2][2]["json"]["requests"][0]["deleteDimension"]["range"]["endIndex"] == 4


def test_unknown_worksheet():
	client, store = make_store(FakeResponse({"sheets": [{"properties": {"title": "Other", "sheetId": 0}}]}))
	with pytest.raises(LayoutError, match="no worksheet named 'Customers'"):
		store.delete_rows(2)


def test_header_rows_are_not_writable():
	client, store = make_store()
	with pytest.raises(ValueError):
		store.overwrite(1, ["cust-1"])
	with pytest.raises(ValueError):
		store.delete_rows(1)
	assert client.requests == []


def test_http_errors_become_transient():
	client, store = make_store(FakeResponse(status_code=429, content=b"Quota exceeded"))
	with pytest.raises(TransientRemoteError, match="Quota exceeded"):
		store.find()


def test_connection_errors_become_transient():
	client, store = make_store(requests.ConnectionError("connection reset"))
	with pytest.raises(TransientRemoteError, match="connection reset"):
		store.append(["cust-1"])


def test_read_header():
	client, store = make_store(FakeResponse({"values": [["id", "name"]]}), columns=["name"])
	assert store.read_header() == ["id", "name"]
	assert client.requests[0][1].endswith("'Customers'!A1:O1")
