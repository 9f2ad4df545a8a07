"""
API tests for the aggregation module.
Tests statistics, row counts and group points against the seeded tasks table.
"""

import json
from typing import Any, Dict, Tuple

from fastapi.testclient import TestClient
from sqlalchemy import select

from tablestats.core.config import ThresholdConfig, get_threshold_config
from tablestats.logging.models import Log

TASKS_TABLE_ID = "tblTasks"
PROJECTS_TABLE_ID = "tblProjects"

AGGREGATION_URL = f"/api/table/{TASKS_TABLE_ID}/aggregation/"
ROW_COUNT_URL = f"/api/table/{TASKS_TABLE_ID}/aggregation/row-count"
GROUP_POINTS_URL = f"/api/table/{TASKS_TABLE_ID}/aggregation/group-points"


def totals(payload: Dict[str, Any]) -> Dict[Tuple[str, str], Any]:
    """Index an aggregation response by (fieldId, aggFunc)"""
    return {
        (aggregation["fieldId"], aggregation["total"]["aggFunc"]): aggregation["total"]["value"]
        for aggregation in payload["aggregations"]
    }


def status_filter(value: str) -> str:
    return json.dumps({"conjunction": "and", "filterSet": [{"fieldId": "fldStatus", "operator": "is", "value": value}]})


class TestAggregation:
    """Test statistics over the tasks table"""

    def test_view_statistics(self, client: TestClient):
        response = client.get(AGGREGATION_URL, params={"viewId": "viwGrid"})
        assert response.status_code == 200

        # Hidden owner column and the category column without a function are left out
        assert totals(response.json()) == {
            ("fldStatus", "unique"): 2,
            ("fldAmount", "sum"): 60.0,
        }

    def test_view_filter_applies(self, client: TestClient):
        response = client.get(AGGREGATION_URL, params={"viewId": "viwFiltered"})
        assert response.status_code == 200
        assert totals(response.json()) == {("fldAmount", "sum"): 30.0}

    def test_caller_filter_combines_with_view_filter(self, client: TestClient):
        response = client.get(AGGREGATION_URL, params={"viewId": "viwFiltered", "filter": status_filter("A")})
        assert response.status_code == 200
        assert totals(response.json()) == {("fldAmount", "sum"): 30.0}

        response = client.get(AGGREGATION_URL, params={"viewId": "viwFiltered", "filter": status_filter("B")})
        assert totals(response.json()) == {("fldAmount", "sum"): None}

    def test_field_ids_restrict_statistics(self, client: TestClient):
        response = client.get(AGGREGATION_URL, params={"viewId": "viwGrid", "fieldIds": ["fldStatus"]})
        assert response.status_code == 200
        assert totals(response.json()) == {("fldStatus", "unique"): 2}

    def test_custom_statistics(self, client: TestClient):
        field = {
            "percentEmpty": ["fldAmount"],
            "average": ["fldAmount"],
            "dateRangeOfMonths": ["fldDue"],
            "dateRangeOfDays": ["fldDue"],
            "earliestDate": ["fldDue"],
            "checked": ["fldDone"],
            "unChecked": ["fldDone"],
            "unique": ["fldTags"],
            "empty": ["fldTags"],
        }

        response = client.get(AGGREGATION_URL, params={"field": json.dumps(field)})
        assert response.status_code == 200

        assert totals(response.json()) == {
            ("fldAmount", "percentEmpty"): 25.0,
            ("fldAmount", "average"): 20.0,
            ("fldDue", "dateRangeOfMonths"): 2,
            ("fldDue", "dateRangeOfDays"): 74,
            ("fldDue", "earliestDate"): "2024-01-01",
            ("fldDone", "checked"): 2,
            ("fldDone", "unChecked"): 2,
            ("fldTags", "unique"): 3,
            ("fldTags", "empty"): 1,
        }

    def test_custom_statistics_override_view_defaults(self, client: TestClient):
        response = client.get(
            AGGREGATION_URL,
            params={"viewId": "viwGrid", "field": json.dumps({"max": ["fldAmount"]})},
        )
        assert response.status_code == 200
        assert totals(response.json()) == {("fldAmount", "max"): 30.0}

    def test_percent_over_no_rows_is_zero(self, client: TestClient):
        field = {"percentFilled": ["fldAmount"], "sum": ["fldAmount"], "count": ["fldAmount"]}

        response = client.get(AGGREGATION_URL, params={"field": json.dumps(field), "filter": status_filter("Z")})
        assert response.status_code == 200

        assert totals(response.json()) == {
            ("fldAmount", "percentFilled"): 0,
            ("fldAmount", "sum"): None,
            ("fldAmount", "count"): 0,
        }

    def test_views_without_statistics(self, client: TestClient):
        for view_id in ("viwKanban", "viwDeleted", "viwUnknown", "viwGantt"):
            response = client.get(AGGREGATION_URL, params={"viewId": view_id})
            assert response.status_code == 200
            assert response.json() == {"aggregations": []}

    def test_no_view_and_no_functions(self, client: TestClient):
        response = client.get(AGGREGATION_URL)
        assert response.status_code == 200
        assert response.json() == {"aggregations": []}

    def test_unknown_table(self, client: TestClient):
        response = client.get("/api/table/tblNope/aggregation/", params={"viewId": "viwGrid"})
        assert response.status_code == 404

    def test_deleted_table(self, client: TestClient):
        response = client.get("/api/table/tblGone/aggregation/")
        assert response.status_code == 404

    def test_malformed_stored_filter(self, client: TestClient):
        response = client.get(AGGREGATION_URL, params={"viewId": "viwBroken"})
        assert response.status_code == 422

    def test_invalid_caller_filter(self, client: TestClient):
        response = client.get(AGGREGATION_URL, params={"filter": "{not json"})
        assert response.status_code == 400

    def test_invalid_statistic_function(self, client: TestClient):
        response = client.get(AGGREGATION_URL, params={"field": json.dumps({"median": ["fldAmount"]})})
        assert response.status_code == 400

    def test_month_range_on_non_date_field_is_absent(self, client: TestClient):
        response = client.get(AGGREGATION_URL, params={"field": json.dumps({"dateRangeOfMonths": ["fldStatus"]})})
        assert response.status_code == 200
        assert totals(response.json()) == {("fldStatus", "dateRangeOfMonths"): None}


class TestRowCount:
    """Test counting visible rows"""

    def test_all_rows(self, client: TestClient):
        response = client.get(ROW_COUNT_URL)
        assert response.status_code == 200
        assert response.json() == {"rowCount": 4}

    def test_caller_filter(self, client: TestClient):
        response = client.get(ROW_COUNT_URL, params={"filter": status_filter("A")})
        assert response.json() == {"rowCount": 3}

    def test_view_filter(self, client: TestClient):
        response = client.get(ROW_COUNT_URL, params={"viewId": "viwFiltered"})
        assert response.json() == {"rowCount": 3}

    def test_view_and_caller_filter(self, client: TestClient):
        response = client.get(ROW_COUNT_URL, params={"viewId": "viwFiltered", "filter": status_filter("A")})
        assert response.json() == {"rowCount": 2}

    def test_me_resolves_to_acting_user(self, client: TestClient):
        me_filter = json.dumps({"filterSet": [{"fieldId": "fldOwner", "operator": "is", "value": "me"}]})

        response = client.get(ROW_COUNT_URL, params={"filter": me_filter}, headers={"X-User-Id": "usr1"})
        assert response.json() == {"rowCount": 2}

        response = client.get(ROW_COUNT_URL, params={"filter": me_filter})
        assert response.json() == {"rowCount": 0}

    def test_or_filter_with_empty_check(self, client: TestClient):
        filter_set = json.dumps({
            "conjunction": "or",
            "filterSet": [
                {"fieldId": "fldAmount", "operator": "isEmpty"},
                {"fieldId": "fldAmount", "operator": "isGreaterEqual", "value": 30},
            ],
        })

        response = client.get(ROW_COUNT_URL, params={"filter": filter_set})
        assert response.json() == {"rowCount": 2}

    def test_link_cell_selected(self, client: TestClient):
        response = client.get(ROW_COUNT_URL, params={"filterLinkCellSelected": json.dumps(["fldTasksLink", "prj1"])})
        assert response.json() == {"rowCount": 2}

        response = client.get(ROW_COUNT_URL, params={"filterLinkCellSelected": json.dumps(["fldTasksLink"])})
        assert response.json() == {"rowCount": 3}

    def test_link_cell_candidate(self, client: TestClient):
        response = client.get(ROW_COUNT_URL, params={"filterLinkCellCandidate": json.dumps(["fldTasksLink", "prj1"])})
        assert response.json() == {"rowCount": 2}

        # Without a record: rows not linked to any record
        response = client.get(ROW_COUNT_URL, params={"filterLinkCellCandidate": json.dumps(["fldTasksLink"])})
        assert response.json() == {"rowCount": 1}

    def test_link_cell_candidate_with_filter(self, client: TestClient):
        response = client.get(
            ROW_COUNT_URL,
            params={"filterLinkCellCandidate": json.dumps(["fldTasksLink", "prj1"]), "filter": status_filter("A")},
        )
        assert response.json() == {"rowCount": 1}

    def test_link_cell_candidate_on_wrong_table(self, client: TestClient):
        response = client.get(
            f"/api/table/{PROJECTS_TABLE_ID}/aggregation/row-count",
            params={"filterLinkCellCandidate": json.dumps(["fldTasksLink"])},
        )
        assert response.status_code == 400

    def test_link_cell_on_non_link_field(self, client: TestClient):
        response = client.get(ROW_COUNT_URL, params={"filterLinkCellSelected": json.dumps(["fldStatus"])})
        assert response.status_code == 400

    def test_link_cell_on_unknown_field(self, client: TestClient):
        response = client.get(ROW_COUNT_URL, params={"filterLinkCellSelected": json.dumps(["fldNope"])})
        assert response.status_code == 404

    def test_link_cell_malformed(self, client: TestClient):
        response = client.get(ROW_COUNT_URL, params={"filterLinkCellSelected": json.dumps(["a", "b", "c"])})
        assert response.status_code == 400

    def test_unsupported_operator_on_json_field(self, client: TestClient):
        filter_set = json.dumps({
            "conjunction": "and",
            "filterSet": [{"fieldId": "fldTags", "operator": "isGreater", "value": "a"}],
        })

        response = client.get(ROW_COUNT_URL, params={"filter": filter_set})
        assert response.status_code == 400
        assert "not supported" in response.json()["detail"]

    def test_unknown_table(self, client: TestClient):
        response = client.get("/api/table/tblNope/aggregation/row-count")
        assert response.status_code == 404

    def test_malformed_stored_filter(self, client: TestClient):
        response = client.get(ROW_COUNT_URL, params={"viewId": "viwBroken"})
        assert response.status_code == 422


class TestGroupPoints:
    """Test group headers and counts"""

    def test_single_level(self, client: TestClient):
        response = client.get(
            GROUP_POINTS_URL,
            params={
                "viewId": "viwGrid",
                "groupBy": json.dumps([{"fieldId": "fldStatus"}]),
                "filter": json.dumps({"filterSet": [{"fieldId": "fldCategory", "operator": "is", "value": "X"}]}),
            },
        )
        assert response.status_code == 200

        points = response.json()
        assert [(p["type"], p.get("depth"), p.get("value"), p.get("count")) for p in points] == [
            (0, 0, "A", None),
            (1, None, None, 2),
            (0, 0, "B", None),
            (1, None, None, 1),
        ]
        assert all(len(p["id"]) == 16 for p in points if p["type"] == 0)

    def test_two_levels(self, client: TestClient):
        response = client.get(
            GROUP_POINTS_URL,
            params={
                "viewId": "viwGrid",
                "groupBy": json.dumps([{"fieldId": "fldCategory"}, {"fieldId": "fldStatus"}]),
            },
        )
        assert response.status_code == 200

        points = response.json()
        assert [(p["type"], p.get("depth"), p.get("value"), p.get("count")) for p in points] == [
            (0, 0, "X", None),
            (0, 1, "A", None),
            (1, None, None, 2),
            (0, 1, "B", None),
            (1, None, None, 1),
            (0, 0, "Y", None),
            (0, 1, "A", None),
            (1, None, None, 1),
        ]

    def test_descending_order_and_view_filter(self, client: TestClient):
        response = client.get(
            GROUP_POINTS_URL,
            params={"viewId": "viwFiltered", "groupBy": json.dumps([{"fieldId": "fldStatus", "order": "desc"}])},
        )
        assert response.status_code == 200

        values = [p["value"] for p in response.json() if p["type"] == 0]
        counts = [p["count"] for p in response.json() if p["type"] == 1]
        assert values == ["B", "A"]
        assert counts == [1, 2]

    def test_json_values_are_decoded(self, client: TestClient):
        response = client.get(
            GROUP_POINTS_URL,
            params={"viewId": "viwGrid", "groupBy": json.dumps([{"fieldId": "fldTags"}])},
        )
        assert response.status_code == 200

        values = [p["value"] for p in response.json() if p["type"] == 0]
        assert values == [None, ["blue"], ["red", "blue"], ["red"]]

    def test_without_view_or_group_keys(self, client: TestClient):
        response = client.get(GROUP_POINTS_URL, params={"groupBy": json.dumps([{"fieldId": "fldStatus"}])})
        assert response.status_code == 200
        assert response.json() is None

        response = client.get(GROUP_POINTS_URL, params={"viewId": "viwGrid", "groupBy": "[]"})
        assert response.status_code == 200
        assert response.json() is None

    def test_too_many_groups(self, client: TestClient):
        client.app.dependency_overrides[get_threshold_config] = lambda: ThresholdConfig(max_group_points=1)

        response = client.get(
            GROUP_POINTS_URL,
            params={"viewId": "viwGrid", "groupBy": json.dumps([{"fieldId": "fldStatus"}])},
        )
        assert response.status_code == 413
        assert "exceed limit" in response.json()["detail"]

    def test_invalid_group_keys(self, client: TestClient):
        response = client.get(GROUP_POINTS_URL, params={"viewId": "viwGrid", "groupBy": "{not json"})
        assert response.status_code == 400


class TestRequestLogging:
    """Test that requests are recorded in the log table"""

    def test_request_is_logged(self, client: TestClient, db_session):
        client.get(ROW_COUNT_URL, headers={"X-User-Id": "usr1"})

        logs = db_session.execute(select(Log).where(Log.path == ROW_COUNT_URL)).scalars().all()
        assert len(logs) == 1
        assert logs[0].status_code == 200
        assert logs[0].method == "GET"

    def test_errors_are_logged(self, client: TestClient, db_session):
        client.get("/api/table/tblNope/aggregation/row-count")

        logs = db_session.execute(
            select(Log).where(Log.path == "/api/table/tblNope/aggregation/row-count")
        ).scalars().all()
        assert {log.status_code for log in logs} == {404}

    def test_health_is_not_logged(self, client: TestClient, db_session):
        response = client.get("/health")
        assert response.json() == {"status": "ok"}

        assert db_session.execute(select(Log).where(Log.path == "/health")).scalars().all() == []
