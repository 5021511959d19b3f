# TESTS/test_export.py
import json

import database as db
import export
from conftest import make_txn, seed


def test_csv_quotes_and_blanks(ledger):
    db.upsert_transactions(ledger, [
        make_txn("t1", -1500.0, name='Salary "Direct Deposit"', category="INCOME"),
    ])
    out = export.export_csv(db.get_transactions(ledger))

    lines = out.split("\n")
    assert lines[0] == ",".join(export.CSV_HEADERS)
    assert lines[1] == 't1,acc_1,2024-06-15,"Salary ""Direct Deposit""",,-1500,INCOME,,,false,online'
    assert out.endswith("\n")
    assert "None" not in out and "null" not in out and "nan" not in out


def test_csv_quotes_carriage_returns_and_line_feeds(ledger):
    db.upsert_transactions(ledger, [
        make_txn("t1", 25.0, name="a\rb"),
        make_txn("t2", 3.0, name="two\nlines", date="2024-06-14"),
    ])
    out = export.export_csv(db.get_transactions(ledger))
    assert "\nt1,acc_1,2024-06-15,\"a\rb\",,25,,,,false,online\n" in out
    assert "\nt2,acc_1,2024-06-14,\"two\nlines\",,3,,,,false,online\n" in out


def test_csv_amounts_drop_trailing_zero_fraction(ledger):
    db.upsert_transactions(ledger, [
        make_txn("whole", -5000.0, date="2024-06-03"),
        make_txn("cents", 12.34, date="2024-06-02"),
        make_txn("zero", 0.0, date="2024-06-01"),
    ])
    rows = export.export_csv(db.get_transactions(ledger)).splitlines()[1:]
    assert [r.split(",")[5] for r in rows] == ["-5000", "12.34", "0"]


def test_csv_quotes_commas_and_marks_pending(ledger):
    seed(ledger, [
        make_txn("t1", 12.5, name="Joe's Pizza, Brooklyn", merchant_name="Joe's Pizza", pending=1, tag="food"),
    ])
    row = export.export_csv(db.get_transactions(ledger)).split("\n")[1]
    assert row == "t1,acc_1,2024-06-15,\"Joe's Pizza, Brooklyn\",Joe's Pizza,12.5,,,food,true,online"


def test_csv_of_nothing_is_just_the_header():
    assert export.export_csv([]) == ",".join(export.CSV_HEADERS) + "\n"


def test_json_export(ledger):
    db.upsert_transactions(ledger, [make_txn("t1", 9.99, pending=1)])
    out = export.export_json(db.get_transactions(ledger))
    assert out.endswith("\n")
    data = json.loads(out)
    assert data[0]["transaction_id"] == "t1"
    assert data[0]["pending"] is True
    assert data[0]["tag"] is None
    assert export.export_json([]) == "[]\n"
