"""
Tests for the demand data model and payload ingestion.
"""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.data.models import (
    DemandDataset,
    MonthInfo,
    TaskAssignment,
    dataset_from_dict,
    dataset_to_frame,
    unique_clients,
    unique_preferred_staff,
)
from src.staffing.identity import PlainStaffRef, StructuredStaffRef


PAYLOAD = {
    "months": [{"key": "2025-01", "label": "Jan 2025"}, {"key": "2025-02", "label": "Feb 2025"}],
    "skills": ["Tax Prep", "Tax Prep", "Bookkeeping"],
    "dataPoints": [
        {
            "skillType": "Tax Prep",
            "month": "2025-01",
            "demandHours": 5,
            "taskCount": 2,
            "clientCount": 2,
            "taskBreakdown": [
                {"taskId": "t1", "clientId": "c1", "clientName": "Acme", "monthlyHours": 2,
                 "preferredStaff": {"staffId": "S-1", "fullName": "Ann"}},
                {"taskId": "t2", "clientId": "c2", "clientName": "Globex", "monthlyHours": 3,
                 "preferredStaff": "S-2"},
                "not a task",
            ],
        },
        {"skillType": "Bookkeeping", "month": "2025-02", "demandHours": 1},
    ],
    "totalDemand": 6,
    "totalTasks": 3,
    "totalClients": 2,
}


class TestDatasetFromDict:
    """camelCase payloads parsed into frozen records."""

    def test_months_and_skills(self):
        dataset = dataset_from_dict(PAYLOAD)

        assert dataset.months == (MonthInfo("2025-01", "Jan 2025"), MonthInfo("2025-02", "Feb 2025"))
        assert dataset.skills == ("Tax Prep", "Bookkeeping")
        assert dataset.all_months == dataset.months

    def test_staff_refs_resolved_at_ingestion(self):
        tasks = dataset_from_dict(PAYLOAD).data_points[0].task_breakdown

        assert tasks[0].preferred_staff == StructuredStaffRef("S-1", "Ann")
        assert tasks[0].preferred_staff_key == "s-1"
        assert tasks[1].preferred_staff == PlainStaffRef("S-2")

    def test_malformed_task_dropped(self):
        point = dataset_from_dict(PAYLOAD).data_points[0]

        assert len(point.task_breakdown) == 2

    def test_missing_breakdown_kept_as_none(self):
        point = dataset_from_dict(PAYLOAD).data_points[1]

        assert point.task_breakdown is None

    def test_snake_case_staff_columns(self):
        task = dataset_from_dict({
            "data_points": [{
                "skill_type": "Audit",
                "month": "2025-01",
                "task_breakdown": [{"task_id": "t9", "client_id": "c9", "monthly_hours": 1,
                                    "preferred_staff_id": " X "}],
            }],
        }).data_points[0].task_breakdown[0]

        assert task.preferred_staff_key == "x"


class TestRecords:
    def test_fallback_flag_excluded_from_equality(self):
        assert DemandDataset(is_fallback=True) == DemandDataset()

    def test_lists_become_tuples(self):
        dataset = DemandDataset(months=[MonthInfo("2025-01", "Jan 2025")], skills=["a"])

        assert isinstance(dataset.months, tuple)
        assert isinstance(dataset.skills, tuple)

    def test_reference_lists(self):
        dataset = dataset_from_dict(PAYLOAD)

        assert [c.id for c in unique_clients(dataset)] == ["c1", "c2"]
        assert [(s.id, s.name) for s in unique_preferred_staff(dataset)] == [("s-1", "Ann"), ("s-2", "s-2")]

    def test_to_frame(self):
        frame = dataset_to_frame(dataset_from_dict(PAYLOAD))

        assert list(frame["task_id"]) == ["t1", "t2"]
        assert list(frame["preferred_staff"]) == ["s-1", "s-2"]

    def test_unassigned_task(self):
        task = TaskAssignment("t1", "c1", "Acme", 1.0, None)

        assert task.preferred_staff_key is None
        assert task.preferred_staff_name is None
