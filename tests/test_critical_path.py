"""
Tests for the critical path pass.
"""

from datetime import date, datetime

import pytest

from taskgraph.exceptions import CycleError
from taskgraph.models import DependencyType, TaskDependency
from taskgraph.services.critical_path import (
    analyze_critical_path,
    calculate_critical_path,
    update_critical_path_markers,
)
from taskgraph.services.dependencies import create_dependency, new_dependency


def _by_title(analysis):
    return {t.title: t for t in analysis.task_analyses}


class TestForwardBackwardPass:
    def test_simple_chain(self, new_task):
        """A (8h) -> B (4h) -> C (2h): everything is critical."""
        a = new_task("A", estimated_duration_hours=8)
        b = new_task("B", estimated_duration_hours=4)
        c = new_task("C", estimated_duration_hours=2)
        ab, bc = new_dependency(b, a), new_dependency(c, b)

        analysis = calculate_critical_path([a, b, c], [ab, bc])
        tasks = _by_title(analysis)

        assert analysis.project_duration_hours == 14
        assert (tasks["B"].earliest_start, tasks["B"].earliest_finish) == (8, 12)
        assert (tasks["C"].earliest_start, tasks["C"].earliest_finish) == (12, 14)
        assert analysis.critical_path_task_ids == [a.id, b.id, c.id]
        assert set(analysis.critical_dependency_ids) == {ab.id, bc.id}

    def test_parallel_branch_has_float(self, new_task):
        """A (10h) and B (4h) both feed C; B can slip 6h."""
        a = new_task("A", estimated_duration_hours=10)
        b = new_task("B", estimated_duration_hours=4)
        c = new_task("C", estimated_duration_hours=2)
        ac, bc = new_dependency(c, a), new_dependency(c, b)

        analysis = calculate_critical_path([a, b, c], [ac, bc])
        tasks = _by_title(analysis)

        assert tasks["C"].earliest_start == 10
        assert tasks["B"].total_float == pytest.approx(6)
        assert not tasks["B"].is_critical
        assert tasks["A"].is_critical and tasks["C"].is_critical
        assert analysis.critical_dependency_ids == [ac.id]

    def test_lag_delays_dependent(self, new_task):
        order = new_task("Order gearbox", estimated_duration_hours=8)
        install = new_task("Install gearbox", estimated_duration_hours=8)
        dependency = new_dependency(install, order, lag_hours=16)

        analysis = calculate_critical_path([order, install], [dependency])

        assert _by_title(analysis)["Install gearbox"].earliest_start == 24
        assert analysis.project_duration_hours == 32

    def test_start_to_start(self, new_task):
        a = new_task("A", estimated_duration_hours=8)
        b = new_task("B", estimated_duration_hours=4)

        analysis = calculate_critical_path([a, b], [new_dependency(b, a, DependencyType.START_TO_START, lag_hours=2)])
        tasks = _by_title(analysis)

        assert (tasks["B"].earliest_start, tasks["B"].earliest_finish) == (2, 6)
        assert tasks["A"].is_critical
        assert tasks["B"].total_float == pytest.approx(2)

    def test_finish_to_finish(self, new_task):
        a = new_task("A", estimated_duration_hours=8)
        b = new_task("B", estimated_duration_hours=2)
        dependency = new_dependency(b, a, DependencyType.FINISH_TO_FINISH)

        analysis = calculate_critical_path([a, b], [dependency])
        tasks = _by_title(analysis)

        assert tasks["B"].earliest_finish == tasks["A"].earliest_finish == 8
        assert tasks["B"].is_critical
        assert analysis.critical_dependency_ids == [dependency.id]

    def test_start_to_finish(self, new_task):
        a = new_task("A", estimated_duration_hours=8)
        b = new_task("B", estimated_duration_hours=4)

        analysis = calculate_critical_path(
            [a, b], [new_dependency(b, a, DependencyType.START_TO_FINISH, lag_hours=6)]
        )

        # EF(B) >= ES(A) + 6, so B may start at 2
        assert _by_title(analysis)["B"].earliest_start == 2

    def test_soft_and_inactive_edges_do_not_constrain(self, new_task):
        a = new_task("A", estimated_duration_hours=8)
        b = new_task("B", estimated_duration_hours=4)
        c = new_task("C", estimated_duration_hours=4)
        inactive = new_dependency(c, a)
        inactive.active = False

        analysis = calculate_critical_path([a, b, c], [new_dependency(b, a, DependencyType.SOFT), inactive])
        tasks = _by_title(analysis)

        assert tasks["B"].earliest_start == 0
        assert tasks["C"].earliest_start == 0
        assert analysis.critical_dependency_ids == []

    def test_default_duration(self, new_task):
        a = new_task("A")
        analysis = calculate_critical_path([a], [], default_duration_hours=6)

        assert analysis.project_duration_hours == 6

    def test_absolute_times(self, new_task):
        a = new_task("A", estimated_duration_hours=8, start_date=date(2026, 1, 5))
        b = new_task("B", estimated_duration_hours=4)

        analysis = calculate_critical_path([a, b], [new_dependency(b, a)])
        tasks = _by_title(analysis)

        assert analysis.project_start == datetime(2026, 1, 5)
        assert tasks["B"].start_at == datetime(2026, 1, 5, 8)
        assert analysis.project_finish == datetime(2026, 1, 5, 12)

    def test_no_dates_no_absolute_times(self, new_task):
        analysis = calculate_critical_path([new_task("A", estimated_duration_hours=1)], [])
        assert analysis.project_start is None
        assert analysis.task_analyses[0].start_at is None

    def test_heaviest_chain_is_included(self, new_task):
        a = new_task("A", estimated_duration_hours=1)
        b = new_task("B", estimated_duration_hours=1)

        analysis = calculate_critical_path([a, b], [new_dependency(b, a, DependencyType.BLOCKING)])

        assert analysis.heaviest_chain == [a.id, b.id]
        assert analysis.heaviest_chain_weight == 10

    def test_cycle_raises(self, new_task):
        a = new_task("A", estimated_duration_hours=1)
        b = new_task("B", estimated_duration_hours=1)
        edges = []
        for dependent, prerequisite in ((a, b), (b, a)):
            edge = TaskDependency(dependent_task_id=dependent.id, prerequisite_task_id=prerequisite.id)
            edge.dependent_task, edge.prerequisite_task = dependent, prerequisite
            edges.append(edge)

        with pytest.raises(CycleError):
            calculate_critical_path([a, b], edges)


class TestMarkers:
    """Critical path flags written back to stored dependencies."""

    @pytest.mark.asyncio
    async def test_update_markers(self, test_session, project, make_task):
        a = await make_task("A", estimated_duration_hours=10)
        b = await make_task("B", estimated_duration_hours=2)
        c = await make_task("C", estimated_duration_hours=4)

        ac = await create_dependency(test_session, c.id, a.id)
        bc = await create_dependency(test_session, c.id, b.id)
        soft = await create_dependency(test_session, b.id, a.id, DependencyType.SOFT)

        critical = await update_critical_path_markers(test_session, project.id)

        assert critical == 1
        assert ac.critical_path
        assert not bc.critical_path
        assert not soft.critical_path

    @pytest.mark.asyncio
    async def test_markers_are_cleared(self, test_session, project, make_task):
        a = await make_task("A", estimated_duration_hours=4)
        b = await make_task("B", estimated_duration_hours=4)
        dependency = await create_dependency(test_session, b.id, a.id)

        await update_critical_path_markers(test_session, project.id)
        assert dependency.critical_path

        dependency.active = False
        await update_critical_path_markers(test_session, project.id)
        assert not dependency.critical_path

    @pytest.mark.asyncio
    async def test_analyze_empty_project(self, test_session, project):
        assert await analyze_critical_path(test_session, project.id) is None
