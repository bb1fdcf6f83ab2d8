"""
Tests for the issued-items view-model (issuance_engines.reconciliation).

Covers:
- One record per issued item, none for other statuses
- Overdue / active classification and the date-priority rule
- Direct / request-based partition and the request join
- Approved-not-issued requests
- Aggregate statistics
- Purity (idempotence, no clock access)
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from issuance_engines.reconciliation import (
    DIRECT_ISSUE_PURPOSE,
    derive_issuance_view,
)
from issuance_kernel.domain.records import (
    IssuanceStatus,
    parse_inventory_items,
    parse_requests,
    parse_users,
)


@pytest.fixture
def derive(as_of, sample_users):
    """Parse payloads and derive the view at AS_OF."""

    def _derive(items, requests=(), users=None, **kwargs):
        return derive_issuance_view(
            parse_inventory_items(items),
            parse_requests(requests),
            parse_users(sample_users if users is None else users),
            as_of=kwargs.pop("as_of", as_of),
            **kwargs,
        )

    return _derive


class TestRecordSelection:
    """Only issued items produce records."""

    def test_non_issued_items_produce_no_record(self, derive, make_item):
        items = [
            make_item("1", status="available"),
            make_item("2", status="maintenance"),
            make_item("3", status="retired"),
            make_item("4"),
        ]

        view = derive(items)

        assert [r.item_id for r in view.records] == ["4"]
        assert view.record_for("1") is None

    def test_status_match_is_case_insensitive(self, derive, make_item):
        view = derive([make_item("1", status="ISSUED")])

        assert len(view.records) == 1

    def test_empty_and_missing_collections(self, as_of):
        """None collections are treated as empty."""
        view = derive_issuance_view(None, None, None, as_of=as_of)

        assert view.records == ()
        assert view.approved_not_issued == ()
        assert view.stats.total == 0
        assert view.stats.avg_days_out == 0
        assert view.stats.total_value == Decimal("0")


class TestOverdueClassification:
    """``overdue`` iff days since issue exceeds the threshold."""

    def test_forty_days_is_overdue_direct_issue(self, derive, make_item, days_ago):
        view = derive([make_item("1", issueddate=days_ago(40))], requests=[])

        record = view.record_for("1")
        assert record.status == IssuanceStatus.OVERDUE
        assert record.request_id is None
        assert record in view.direct_issues
        assert view.stats.overdue == 1

    def test_five_days_is_active_and_recent(self, derive, make_item, days_ago):
        view = derive([make_item("1", issueddate=days_ago(5))], requests=[])

        record = view.record_for("1")
        assert record.status == IssuanceStatus.ACTIVE
        assert record.days_since_issued == 5
        assert view.stats.recent == 1
        assert view.stats.active == 1

    def test_threshold_is_strictly_greater(self, derive, make_item, days_ago):
        """Exactly 30 days is still active; 31 is overdue."""
        view = derive([
            make_item("30", issueddate=days_ago(30)),
            make_item("31", issueddate=days_ago(31)),
        ])

        assert view.record_for("30").status == IssuanceStatus.ACTIVE
        assert view.record_for("31").status == IssuanceStatus.OVERDUE

    def test_partial_days_are_floored(self, derive, make_item, days_ago):
        """30 days and 23 hours floors to 30."""
        view = derive([make_item("1", issueddate=days_ago(30, hours=23))])

        record = view.record_for("1")
        assert record.days_since_issued == 30
        assert record.status == IssuanceStatus.ACTIVE

    def test_custom_threshold(self, derive, make_item, days_ago):
        view = derive([make_item("1", issueddate=days_ago(10))], overdue_after_days=7)

        assert view.record_for("1").status == IssuanceStatus.OVERDUE

    def test_future_issue_date_is_negative_and_active(self, derive, make_item, as_of):
        future = (as_of + timedelta(days=2)).isoformat()
        view = derive([make_item("1", issueddate=future)])

        record = view.record_for("1")
        assert record.days_since_issued == -2
        assert record.status == IssuanceStatus.ACTIVE

    def test_overdue_iff_property(self, derive, make_item, days_ago):
        items = [make_item(str(n), issueddate=days_ago(n)) for n in range(0, 60, 3)]

        view = derive(items)

        for record in view.records:
            assert (record.status == IssuanceStatus.OVERDUE) == (record.days_since_issued > 30)


class TestIssueDatePriority:
    """issueddate -> dateofissue -> lastmodifieddate -> as_of."""

    def test_issued_date_wins_over_date_of_issue(self, derive, make_item, days_ago):
        view = derive([make_item("1", issueddate=days_ago(3), dateofissue=days_ago(50))])

        assert view.record_for("1").days_since_issued == 3

    def test_date_of_issue_used_when_issued_date_absent(self, derive, make_item, days_ago):
        view = derive([
            make_item("1", issueddate=None, dateofissue=days_ago(12), lastmodifieddate=days_ago(1)),
        ])

        assert view.record_for("1").days_since_issued == 12

    def test_last_modified_used_when_no_issue_fields(self, derive, make_item, days_ago):
        view = derive([make_item("1", issueddate=None, lastmodifieddate=days_ago(45))])

        record = view.record_for("1")
        assert record.days_since_issued == 45
        assert record.status == IssuanceStatus.OVERDUE

    def test_no_dates_means_issued_now(self, derive, make_item, as_of):
        view = derive([make_item("1", issueddate=None)])

        record = view.record_for("1")
        assert record.issued_date == as_of
        assert record.days_since_issued == 0

    def test_unparsable_date_falls_through(self, derive, make_item, days_ago):
        view = derive([make_item("1", issueddate="not a date", dateofissue=days_ago(8))])

        assert view.record_for("1").days_since_issued == 8


class TestRequestJoin:
    """Attribution of issued items to approved requests."""

    def test_matching_approved_request_is_attributed(self, derive, make_item, make_request):
        view = derive([make_item("1")], [make_request("r1")])

        record = view.record_for("1")
        assert record.request_id == "r1"
        assert record.is_request_based
        assert record.purpose == "Onboarding"
        assert record.notes == "Approved by IT"
        assert record in view.request_based_issues
        assert view.approved_not_issued == ()

    def test_pending_request_is_not_joined(self, derive, make_item, make_request):
        view = derive([make_item("1")], [make_request("r1", status="pending")])

        assert view.record_for("1").request_id is None
        assert view.approved_not_issued == ()

    def test_item_type_must_match_asset_name(self, derive, make_item, make_request):
        view = derive([make_item("1")], [make_request("r1", itemtype="Monitor")])

        assert view.record_for("1").request_id is None
        assert [r.id for r in view.approved_not_issued] == ["r1"]

    def test_first_approved_request_wins(self, derive, make_item, make_request):
        requests = [
            make_request("r0", status="rejected"),
            make_request("r1", purpose="First"),
            make_request("r2", purpose="Second"),
        ]

        view = derive([make_item("1")], requests)

        assert view.record_for("1").request_id == "r1"
        assert [r.id for r in view.approved_not_issued] == ["r2"]

    def test_issued_to_user_id_resolves_to_name_for_join(self, derive, make_item, make_request):
        view = derive([make_item("1", issuedto="u1")], [make_request("r1")])

        record = view.record_for("1")
        assert record.issued_to == "Alice"
        assert record.request_id == "r1"

    def test_raw_issued_to_used_as_second_candidate(self, derive, make_item, make_request):
        """A request filed under the raw id still matches after name resolution."""
        view = derive([make_item("1", issuedto="u1")], [make_request("r1", employeename="u1")])

        assert view.record_for("1").request_id == "r1"

    def test_unmatched_approved_request_is_not_issued(self, derive, make_item, make_request):
        request = make_request("r1", employeename="Bob", itemtype="Monitor")

        view = derive([make_item("1")], [request])

        assert [r.id for r in view.approved_not_issued] == ["r1"]
        assert all(r.request_id != "r1" for r in view.records)

    def test_request_for_returned_item_stays_unfulfilled(self, derive, make_item, make_request):
        view = derive(
            [make_item("1", status="available", assetname="Monitor", issuedto="Bob")],
            [make_request("r1", employeename="Bob", itemtype="Monitor")],
        )

        assert view.records == ()
        assert [r.id for r in view.approved_not_issued] == ["r1"]


class TestPartition:
    """direct_issues and request_based_issues partition records."""

    def test_partition_is_total_and_disjoint(self, derive, make_item, make_request, days_ago):
        items = [
            make_item("1"),
            make_item("2", issuedto="Bob", assetname="Monitor"),
            make_item("3", issuedto="Carol", issueddate=days_ago(40)),
            make_item("4", status="available"),
        ]
        requests = [make_request("r1"), make_request("r2", employeename="Bob", itemtype="Monitor")]

        view = derive(items, requests)

        direct_ids = {r.item_id for r in view.direct_issues}
        request_ids = {r.item_id for r in view.request_based_issues}
        assert direct_ids.isdisjoint(request_ids)
        assert direct_ids | request_ids == {r.item_id for r in view.records}
        assert len(view.direct_issues) + len(view.request_based_issues) == len(view.records)
        assert direct_ids == {"3"}

    def test_collection_order_is_preserved(self, derive, make_item):
        view = derive([make_item("b"), make_item("a"), make_item("c")])

        assert [r.item_id for r in view.records] == ["b", "a", "c"]


class TestNameResolution:
    """Display names, legacy fallback and departments."""

    def test_unresolved_reference_shows_raw_value(self, derive, make_item):
        view = derive([make_item("1", issuedto="Dana", issuedby="Eve")])

        record = view.record_for("1")
        assert record.issued_to == "Dana"
        assert record.issued_by == "Eve"
        assert record.issued_by_id == "unknown"
        assert record.department == "Unknown"

    def test_issued_by_id_comes_from_directory(self, derive, make_item):
        view = derive([make_item("1", issuedby="u3")])

        record = view.record_for("1")
        assert record.issued_by == "Stock Manager"
        assert record.issued_by_id == "u3"

    def test_department_from_issued_to_user(self, derive, make_item):
        view = derive([make_item("1", issuedto="Bob")])

        assert view.record_for("1").department == "Finance"

    def test_legacy_markers_fill_missing_names(self, derive, make_item):
        description = "Spare unit\n\nISSUED TO: Bob\nISSUED BY: Stock Manager\nPURPOSE: Audit trip"

        view = derive([make_item("1", issuedto=None, issuedby=None, description=description)])

        record = view.record_for("1")
        assert record.issued_to == "Bob"
        assert record.issued_by == "Stock Manager"
        assert record.purpose == "Audit trip"
        assert record.department == "Finance"

    def test_structured_fields_win_over_legacy(self, derive, make_item):
        view = derive([make_item("1", issuedto="Alice", description="ISSUED TO: Bob")])

        assert view.record_for("1").issued_to == "Alice"

    def test_missing_names_fall_back_to_unknown(self, derive, make_item):
        view = derive([make_item("1", issuedto=None, issuedby=None)])

        record = view.record_for("1")
        assert record.issued_to == "Unknown"
        assert record.issued_by == "Unknown"

    def test_custom_unknown_label(self, derive, make_item):
        view = derive([make_item("1", issuedto=None)], unknown_label="N/A")

        assert view.record_for("1").issued_to == "N/A"

    def test_direct_issue_purpose_default(self, derive, make_item):
        view = derive([make_item("1")])

        record = view.record_for("1")
        assert record.purpose == DIRECT_ISSUE_PURPOSE
        assert record.notes == ""


class TestStats:
    """Aggregate statistics."""

    def test_total_includes_approved_not_issued(self, derive, make_item, make_request):
        view = derive(
            [make_item("1"), make_item("2", issuedto="Bob")],
            [make_request("r1"), make_request("r9", employeename="Zed", itemtype="Chair")],
        )

        assert view.stats.total == len(view.records) + len(view.approved_not_issued)
        assert view.stats.total == 3
        assert view.stats.direct == 1
        assert view.stats.request_based == 2

    def test_total_value_sums_issued_items_only(self, derive, make_item):
        view = derive([
            make_item("1", totalcost=1200),
            make_item("2", totalcost="99.50"),
            make_item("3", totalcost=5000, status="available"),
        ])

        assert view.stats.total_value == Decimal("1299.50")

    def test_distinct_departments(self, derive, make_item):
        view = derive([
            make_item("1", issuedto="Alice"),
            make_item("2", issuedto="u1"),
            make_item("3", issuedto="Bob"),
            make_item("4", issuedto="Stranger"),
        ])

        assert view.stats.departments == 3

    def test_avg_days_out_skips_items_without_issue_date(self, derive, make_item, days_ago):
        view = derive([
            make_item("1", issueddate=days_ago(10)),
            make_item("2", issueddate=None, dateofissue=days_ago(21)),
            make_item("3", issueddate=None, lastmodifieddate=days_ago(90)),
            make_item("4", issueddate=None),
        ])

        assert view.stats.avg_days_out == 16  # (10 + 21) / 2 = 15.5, half-up

    def test_avg_days_out_zero_without_dates(self, derive, make_item):
        view = derive([make_item("1", issueddate=None)])

        assert view.stats.avg_days_out == 0

    def test_recent_uses_window(self, derive, make_item, days_ago):
        view = derive(
            [
                make_item("1", issueddate=days_ago(2)),
                make_item("2", issueddate=days_ago(7)),
                make_item("3", issueddate=days_ago(8)),
            ],
            recent_within_days=7,
        )

        assert view.stats.recent == 2

    def test_returned_is_zero_and_active_matches(self, derive, make_item, days_ago):
        view = derive([make_item("1"), make_item("2", issueddate=days_ago(60))])

        assert view.stats.returned == 0
        assert view.stats.active == view.stats.active_issuances == 1
        assert view.overdue_records() == (view.record_for("2"),)


class TestPurity:
    """Derivation is a pure function of its inputs."""

    def test_idempotent(self, derive, make_item, make_request, days_ago):
        items = [make_item("1"), make_item("2", issuedto="Bob", issueddate=days_ago(33))]
        requests = [make_request("r1"), make_request("r2", employeename="Carol")]

        assert derive(items, requests) == derive(items, requests)

    def test_as_of_drives_ages(self, derive, make_item, as_of):
        items = [make_item("1")]

        later = derive(items, as_of=as_of + timedelta(days=30))

        assert later.record_for("1").days_since_issued == 35
        assert later.record_for("1").status == IssuanceStatus.OVERDUE

    def test_emits_engine_trace(self, derive, make_item, captured_logs):
        derive([make_item("1")])

        traces = [r for r in captured_logs() if r["message"] == "ISSUANCE_ENGINE_TRACE"]
        assert traces
        assert traces[-1]["engine_name"] == "issuance_reconciliation"
        assert len(traces[-1]["input_fingerprint"]) == 16
