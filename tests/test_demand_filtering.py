"""
Tests for the demand matrix filter pipeline.
"""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.data.cache import ResultCache
from src.data.models import (
    DataPoint,
    DemandDataset,
    MonthInfo,
    TaskAssignment,
    breakdown_totals,
    dataset_totals,
)
from src.data.selection import FilterSelection, GroupingMode, PreferredStaffFilterMode, SelectionFlags
from src.data.time_horizon import MonthRange, month_label
from src.metrics import demand_filtering
from src.metrics.demand_filtering import (
    FilterPipeline,
    derive_flags,
    filter_by_preferred_staff,
    group_by_client,
    sanitize_data_points,
)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _task(task_id, client_id, hours, staff=None):
    return TaskAssignment(
        task_id=task_id,
        client_id=client_id,
        client_name=f"Client {client_id}",
        monthly_hours=hours,
        preferred_staff=staff,
    )


def _point(skill, month, tasks):
    hours, count, clients = breakdown_totals(tasks)
    return DataPoint(skill, month, hours, count, clients, tuple(tasks))


def _dataset(points, month_keys):
    demand, tasks, clients = dataset_totals(points)
    return DemandDataset(
        months=tuple(MonthInfo(k, month_label(k)) for k in month_keys),
        skills=tuple(dict.fromkeys(p.skill_type for p in points)),
        data_points=tuple(points),
        total_demand=demand,
        total_tasks=tasks,
        total_clients=clients,
    )


def _scenario():
    """Tax Prep/Jan: 3 tasks, 2 preferring staff A. Bookkeeping/Jan: 1 unassigned task."""
    tax = _point("Tax Prep", "2025-01", [
        _task("t1", "c1", 2.0, "A"),
        _task("t2", "c2", 3.5, {"staffId": " a ", "fullName": "Alice"}),
        _task("t3", "c1", 5.0, "B"),
    ])
    books = _point("Bookkeeping", "2025-01", [_task("t4", "c3", 4.0)])
    return _dataset([tax, books], ["2025-01"])


def _everything(dataset, **changes):
    values = {
        "selected_skills": dataset.skills,
        "selected_clients": {t.client_id for p in dataset.data_points for t in p.task_breakdown},
        "month_range": MonthRange(0, max(len(dataset.months) - 1, 0)),
    }
    values.update(changes)
    return FilterSelection(**values)


def _assert_aggregates_consistent(dataset):
    for point in dataset.data_points:
        hours, count, clients = breakdown_totals(point.task_breakdown)
        assert point.demand_hours == hours
        assert point.task_count == count
        assert point.client_count == clients
    demand, tasks, clients = dataset_totals(dataset.data_points)
    assert dataset.total_demand == demand
    assert dataset.total_tasks == tasks
    assert dataset.total_clients == clients


class TestPreferredStaffScenarios:
    """Tax Prep / Bookkeeping scenarios for each staff filter mode."""

    def test_specific_staff(self):
        dataset = _scenario()
        selection = _everything(dataset, selected_preferred_staff={"A"},
                                preferred_staff_filter_mode=PreferredStaffFilterMode.SPECIFIC)

        result = FilterPipeline().apply(dataset, selection)

        assert len(result.data_points) == 1
        point = result.data_points[0]
        assert point.skill_type == "Tax Prep"
        assert point.task_count == 2
        assert point.demand_hours == 5.5
        assert result.skills == ("Tax Prep",)

    def test_none_mode_keeps_unassigned(self):
        dataset = _scenario()
        selection = _everything(dataset, preferred_staff_filter_mode="none")

        result = FilterPipeline().apply(dataset, selection)

        assert len(result.data_points) == 1
        assert result.data_points[0].skill_type == "Bookkeeping"
        assert result.data_points[0].task_count == 1

    def test_specific_with_empty_selection_shows_nothing(self):
        dataset = _scenario()
        selection = _everything(dataset, selected_preferred_staff=set(),
                                preferred_staff_filter_mode=PreferredStaffFilterMode.SPECIFIC)

        result = FilterPipeline().apply(dataset, selection)

        assert result.data_points == ()
        assert result.is_fallback is True
        assert result.total_demand == 0.0

    def test_all_mode_ignores_staff_selection(self):
        dataset = _scenario()
        selection = _everything(dataset, selected_preferred_staff={"nobody"},
                                preferred_staff_filter_mode=PreferredStaffFilterMode.ALL)

        result = FilterPipeline().apply(dataset, selection)

        assert result.total_tasks == 4
        assert result.total_demand == dataset.total_demand

    def test_stage_function_specific_normalizes_selection(self):
        dataset = _scenario()
        selection = FilterSelection(selected_preferred_staff={"  A "},
                                    preferred_staff_filter_mode="specific")

        points = filter_by_preferred_staff(dataset.data_points, selection)

        assert [t.task_id for t in points[0].task_breakdown] == ["t1", "t2"]


class TestPipelineProperties:
    """Invariants that hold for any selection."""

    def _selections(self, dataset):
        yield _everything(dataset)
        yield _everything(dataset, selected_skills={"Tax Prep"})
        yield _everything(dataset, selected_clients={"c1"})
        yield _everything(dataset, selected_clients=set())
        yield _everything(dataset, preferred_staff_filter_mode="none")
        yield _everything(dataset, selected_preferred_staff={"b"}, preferred_staff_filter_mode="specific")
        yield _everything(dataset, month_range={"start": -4, "end": 99})

    def test_idempotent(self):
        dataset = _scenario()
        pipeline = FilterPipeline()

        for selection in self._selections(dataset):
            once = pipeline.apply(dataset, selection)
            twice = pipeline.apply(once, selection)
            assert twice == once

    def test_aggregates_match_breakdown(self):
        dataset = _scenario()

        for selection in self._selections(dataset):
            _assert_aggregates_consistent(FilterPipeline().apply(dataset, selection))

    def test_input_not_mutated(self):
        dataset = _scenario()
        before = dataset_totals(dataset.data_points)

        FilterPipeline().apply(dataset, _everything(dataset, selected_clients={"c3"}))

        assert dataset_totals(dataset.data_points) == before
        assert dataset.data_points[0].task_count == 3

    def test_never_none(self):
        pipeline = FilterPipeline()

        assert pipeline.apply(None, FilterSelection()) == DemandDataset()
        assert pipeline.apply(DemandDataset(), FilterSelection()).is_empty

    def test_fallback_is_structurally_valid(self):
        dataset = _scenario()

        result = FilterPipeline().apply(dataset, _everything(dataset, selected_skills={"Audit"}))

        assert result.is_fallback
        assert result.data_points == ()
        assert result.skills == ()
        assert (result.total_demand, result.total_tasks, result.total_clients) == (0.0, 0, 0)
        assert [m.key for m in result.months] == ["2025-01"]


class TestClientFilter:
    def test_removes_other_clients_tasks(self):
        dataset = _scenario()

        result = FilterPipeline().apply(dataset, _everything(dataset, selected_clients={"c1"}))

        assert result.total_tasks == 2
        assert result.total_clients == 1
        assert result.data_points[0].client_count == 1
        assert result.total_demand == 7.0


class TestMonthFilter:
    def _quarter(self):
        points = [
            _point("Tax Prep", "2025-01", [_task("t1", "c1", 1.0)]),
            _point("Tax Prep", "2025-02", [_task("t2", "c1", 2.0)]),
            _point("Tax Prep", "2025-03", [_task("t3", "c1", 3.0)]),
        ]
        return _dataset(points, ["2025-01", "2025-02", "2025-03"])

    def test_range_selects_months(self):
        dataset = self._quarter()

        result = FilterPipeline().apply(dataset, _everything(dataset, month_range=MonthRange(1, 1)))

        assert [m.key for m in result.months] == ["2025-02"]
        assert [m.key for m in result.all_months] == ["2025-01", "2025-02", "2025-03"]
        assert result.total_demand == 2.0

    def test_out_of_range_is_clamped(self):
        dataset = self._quarter()
        pipeline = FilterPipeline()

        result = pipeline.apply(dataset, _everything(dataset, month_range={"start": 2, "end": 50}))

        assert [m.key for m in result.months] == ["2025-03"]
        assert pipeline.last_time_horizon.start.month == 3

    def test_stage_counts_recorded(self):
        dataset = self._quarter()
        pipeline = FilterPipeline()

        pipeline.apply(dataset, _everything(dataset, month_range=MonthRange(0, 1)))

        assert pipeline.last_stage_counts == {
            "skills": 3, "clients": 3, "preferred_staff": 3, "time_horizon": 2,
        }


class TestSelectionFlags:
    def test_order_independent(self):
        dataset = _scenario()
        forward = FilterSelection(selected_skills=["Tax Prep", "Bookkeeping"])
        reverse = FilterSelection(selected_skills=["Bookkeeping", "Tax Prep", "Tax Prep"])

        assert derive_flags(dataset, forward).all_skills is True
        assert derive_flags(dataset, reverse).all_skills is True

    def test_partial_selection(self):
        dataset = _scenario()

        flags = derive_flags(dataset, FilterSelection(selected_clients={"c1"}))

        assert flags.all_clients is False

    def test_all_skills_flag_short_circuits(self):
        dataset = _scenario()
        selection = _everything(dataset, selected_skills=set())

        result = FilterPipeline().apply(dataset, selection, SelectionFlags(True, True, True))

        assert result.total_tasks == 4


class TestSanitize:
    def test_drops_missing_breakdown(self):
        broken = DataPoint("Tax Prep", "2025-01", 5.0, 1, 1, None)
        good = _point("Bookkeeping", "2025-01", [_task("t4", "c3", 4.0)])

        clean = sanitize_data_points([broken, good])

        assert [p.skill_type for p in clean] == ["Bookkeeping"]

    def test_drops_non_numeric_hours(self):
        point = DataPoint("Tax Prep", "2025-01", 0, 0, 0,
                          (_task("t1", "c1", "abc"), _task("t2", "c1", 2.0)))

        clean = sanitize_data_points([point])

        assert clean[0].task_count == 1
        assert clean[0].demand_hours == 2.0

    def test_stale_aggregates_recomputed(self):
        point = DataPoint("Tax Prep", "2025-01", 999.0, 42, 7, (_task("t1", "c1", 2.0),))

        clean = sanitize_data_points([point])

        assert (clean[0].demand_hours, clean[0].task_count, clean[0].client_count) == (2.0, 1, 1)


class TestPipelineCache:
    """Memoization owned by the pipeline instance."""

    def test_repeat_selection_hits_cache(self):
        clock = FakeClock()
        pipeline = FilterPipeline(cache=ResultCache(ttl_seconds=60, clock=clock))
        dataset = _scenario()
        selection = _everything(dataset)

        first = pipeline.apply(dataset, selection)
        second = pipeline.apply(dataset, selection)

        assert second is first
        assert pipeline.runs == 1

    def test_entry_expires_after_ttl(self):
        clock = FakeClock()
        pipeline = FilterPipeline(cache=ResultCache(ttl_seconds=60, clock=clock))
        dataset = _scenario()
        selection = _everything(dataset)

        pipeline.apply(dataset, selection)
        clock.advance(61)
        pipeline.apply(dataset, selection)

        assert pipeline.runs == 2
        assert pipeline.cache.stats.expirations == 1

    def test_pipelines_do_not_share_cache(self):
        dataset = _scenario()
        selection = _everything(dataset)
        one, two = FilterPipeline(), FilterPipeline()

        one.apply(dataset, selection)
        two.apply(dataset, selection)

        assert one.runs == 1
        assert two.runs == 1

    def test_cache_hit_restores_run_bookkeeping(self):
        dataset = _scenario()
        pipeline = FilterPipeline()
        everything = _everything(dataset)
        nobody = _everything(dataset, selected_preferred_staff=set(), preferred_staff_filter_mode="specific")

        pipeline.apply(dataset, everything)
        counts = dict(pipeline.last_stage_counts)
        pipeline.apply(dataset, nobody)
        assert pipeline.last_diagnostics is not None

        pipeline.apply(dataset, everything)

        assert pipeline.runs == 2
        assert pipeline.last_stage_counts == counts
        assert pipeline.last_diagnostics is None
        assert pipeline.last_time_horizon.start.month == 1


class TestPipelineErrors:
    def test_stage_exception_returns_fallback(self, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("stage failed")

        monkeypatch.setattr(demand_filtering, "filter_by_clients", boom)
        dataset = _scenario()

        result = FilterPipeline().apply(dataset, _everything(dataset))

        assert result.is_fallback is True
        assert result.data_points == ()

    def test_diagnostics_recorded_on_empty_result(self):
        dataset = _scenario()
        pipeline = FilterPipeline()

        pipeline.apply(dataset, _everything(dataset, selected_preferred_staff={"zed"},
                                            preferred_staff_filter_mode="specific"))

        assert pipeline.last_diagnostics["emptied_by"] == "preferred_staff"
        assert pipeline.last_diagnostics["unique_staff_in_data"] == ["a", "b"]


class TestMalformedInput:
    """Bad records are skipped; the rest of the dataset still filters."""

    def test_none_data_point_skipped(self):
        good = _point("Tax Prep", "2025-01", [_task("t1", "c1", 2.0)])
        dataset = DemandDataset(
            months=(MonthInfo("2025-01", "Jan 2025"),),
            skills=("Tax Prep",),
            data_points=(None, good),
        )

        selection = FilterSelection(selected_skills={"Tax Prep"}, selected_clients={"c1"})

        result = FilterPipeline().apply(dataset, selection)

        assert result.is_fallback is False
        assert result.data_points == (good,)
        assert result.total_demand == 2.0

    def test_flags_ignore_non_records(self):
        good = _point("Tax Prep", "2025-01", [_task("t1", "c1", 2.0)])
        dataset = DemandDataset(months=(MonthInfo("2025-01", "Jan 2025"),),
                                data_points=(None, "junk", good))

        flags = derive_flags(dataset, FilterSelection(selected_skills={"Tax Prep"}, selected_clients={"c1"}))

        assert flags.all_skills is True
        assert flags.all_clients is True

    def test_overflowing_hours_dropped_not_fatal(self):
        point = DataPoint("Tax Prep", "2025-01", 0, 0, 0,
                          (_task("t1", "c1", 10 ** 400), _task("t2", "c1", 2.0)))
        dataset = _dataset([point], ["2025-01"])

        result = FilterPipeline().apply(dataset, _everything(dataset))

        assert result.is_fallback is False
        assert result.total_tasks == 1
        assert result.total_demand == 2.0

    def test_infinite_month_range_clamped(self):
        dataset = _dataset([
            _point("Tax Prep", "2025-01", [_task("t1", "c1", 1.0)]),
            _point("Tax Prep", "2025-02", [_task("t2", "c1", 2.0)]),
        ], ["2025-01", "2025-02"])

        result = FilterPipeline().apply(
            dataset, _everything(dataset, month_range={"start": float("-inf"), "end": float("inf")}))

        assert [m.key for m in result.months] == ["2025-01", "2025-02"]
        assert result.total_demand == 3.0


class TestClientGrouping:
    """Rows re-keyed by client after filtering."""

    def test_rows_are_clients(self):
        dataset = _scenario()

        result = FilterPipeline().apply(dataset, _everything(dataset), grouping_mode=GroupingMode.CLIENT)

        assert result.skills == ("Client c1", "Client c2", "Client c3")
        by_client = {p.skill_type: p for p in result.data_points}
        assert by_client["Client c1"].demand_hours == 7.0
        assert by_client["Client c1"].task_count == 2
        assert by_client["Client c3"].task_count == 1

    def test_totals_unchanged_by_grouping(self):
        dataset = _scenario()
        pipeline = FilterPipeline()

        by_skill = pipeline.apply(dataset, _everything(dataset))
        by_client = pipeline.apply(dataset, _everything(dataset), grouping_mode="client")

        assert (by_client.total_demand, by_client.total_tasks, by_client.total_clients) == (
            by_skill.total_demand, by_skill.total_tasks, by_skill.total_clients)
        assert pipeline.runs == 2

    def test_grouping_applies_after_filters(self):
        dataset = _scenario()

        result = FilterPipeline().apply(
            dataset, _everything(dataset, selected_skills={"Bookkeeping"}), grouping_mode="client")

        assert result.skills == ("Client c3",)

    def test_placeholder_names_skipped(self):
        point = _point("Tax Prep", "2025-01", [
            TaskAssignment("t1", "c1", "Acme", 1.0),
            TaskAssignment("t2", "c2", "More...", 2.0),
        ])
        dataset = _dataset([point], ["2025-01"])

        grouped = group_by_client(dataset)

        assert grouped.skills == ("Acme",)
        assert grouped.total_demand == 1.0

    def test_unknown_mode_groups_by_skill(self):
        dataset = _scenario()

        result = FilterPipeline().apply(dataset, _everything(dataset), grouping_mode="region")

        assert set(result.skills) == {"Tax Prep", "Bookkeeping"}
