"""
Tests for date helpers, validation and exports
"""
from datetime import date

import pytest

import db
import notifications
import store
import utils


@pytest.mark.parametrize(
    "start, months, expected",
    [
        (date(2026, 1, 31), 1, date(2026, 2, 28)),
        (date(2024, 1, 31), 1, date(2024, 2, 29)),
        (date(2026, 11, 15), 3, date(2027, 2, 15)),
        (date(2026, 12, 1), 12, date(2027, 12, 1)),
    ],
)
def test_add_months(start, months, expected):
    assert utils.add_months(start, months) == expected


def test_calc_end_date_uses_plan_length():
    assert utils.calc_end_date("2026-03-10", "Quarterly") == "2026-06-10"
    assert utils.calc_end_date("2026-03-10", "unknown plan") == "2026-04-10"


def test_validate_member_inputs():
    assert utils.validate_member_inputs("Ana", "ana@example.com", "secret1") == []
    errors = utils.validate_member_inputs(" ", "not-an-email", "abc")
    assert len(errors) == 3
    # password optional when editing
    assert utils.validate_member_inputs("Ana", "ana@example.com", None) == []


def test_validate_membership_inputs():
    assert utils.validate_membership_inputs("Monthly", "1500", "2026-03-01", "2026-04-01") == []
    assert "Amount must be numeric." in utils.validate_membership_inputs("Monthly", "abc", "2026-03-01", "2026-04-01")
    assert "Amount must be > 0." in utils.validate_membership_inputs("Monthly", "0", "2026-03-01", "2026-04-01")
    assert "End date must be after start date." in utils.validate_membership_inputs(
        "Monthly", "10", "2026-03-01", "2026-03-01"
    )
    assert len(utils.validate_membership_inputs("Monthly", "10", "bad", "2026-03-01")) == 1


def test_csv_export_and_revenue():
    user_id = store.create_user("Ana", "ana@example.com", None, "x")
    store.create_membership(user_id, "Monthly", "2026-01-05", "2026-02-05", 1500.0)
    store.create_membership(user_id, "Monthly", "2026-02-05", "2026-03-05", 1500.0)

    csv = utils.rows_to_csv_bytes(store.list_memberships()).decode("utf-8")
    assert csv.splitlines()[0].startswith("id,user_id,plan_type")
    assert len(csv.splitlines()) == 3

    df = utils.revenue_summary_by_month()
    assert df["month"].tolist() == ["2026-02", "2026-01"]
    assert df["revenue"].tolist() == [1500.0, 1500.0]


def test_revenue_summary_empty():
    assert list(utils.revenue_summary_by_month().columns) == ["month", "revenue"]


def test_sample_data_feeds_the_sweep():
    utils.insert_sample_data()
    utils.insert_sample_data()

    assert db.fetch_one("SELECT COUNT(*) AS c FROM users")["c"] == 6
    assert len(store.list_active_memberships()) == 6

    class Quiet:
        def send(self, *args):
            return True

        def send_admin_notice(self, *args):
            return True

    # two per batch: the 5-day warning and the overdue membership
    assert notifications.run_sweep(email_sender=Quiet(), whatsapp_sender=Quiet()) == 4


def test_sample_data_after_deleting_members():
    utils.insert_sample_data()
    utils.insert_sample_data()
    for row in db.fetch_all("SELECT id FROM users ORDER BY id LIMIT 3"):
        store.delete_user(row["id"])

    utils.insert_sample_data()
    assert db.fetch_one("SELECT COUNT(*) AS c FROM users")["c"] == 6
