"""
Tests for the per-edge predicates of TaskDependency and new_dependency().
"""

import uuid
from datetime import date, datetime

import pytest

from taskgraph.exceptions import CrossProjectError, CycleError, DuplicateEdgeError, SelfDependencyError
from taskgraph.models import DependencyType, TaskDependency
from taskgraph.services.dependencies import new_dependency
from taskgraph.services.graph import DependencyGraph


class TestSatisfaction:
    """is_satisfied() and is_blocking() against the prerequisite's live state."""

    @pytest.mark.parametrize("dependency_type", [DependencyType.FINISH_TO_START, DependencyType.BLOCKING, DependencyType.FINISH_TO_FINISH])
    def test_finish_types_wait_for_completion(self, new_task, dependency_type):
        drive_base = new_task("Drive base", progress=60)
        wiring = new_task("Wiring")
        dependency = new_dependency(wiring, drive_base, dependency_type)

        assert not dependency.is_satisfied()
        assert dependency.is_blocking()

        drive_base.completed = True
        drive_base.progress = 100
        assert dependency.is_satisfied()
        assert not dependency.is_blocking()

    @pytest.mark.parametrize("dependency_type", [DependencyType.START_TO_START, DependencyType.START_TO_FINISH])
    def test_start_types_wait_for_progress(self, new_task, dependency_type):
        cad = new_task("CAD")
        machining = new_task("Machining")
        dependency = new_dependency(machining, cad, dependency_type)

        assert dependency.is_blocking()

        cad.progress = 5
        assert dependency.is_satisfied()
        assert not dependency.is_blocking()

    def test_soft_never_blocks(self, new_task):
        dependency = new_dependency(new_task("Paint"), new_task("Polish", progress=0), DependencyType.SOFT)

        assert dependency.is_satisfied()
        assert not dependency.is_blocking()

    def test_inactive_edge_is_vacuously_satisfied(self, new_task):
        dependency = new_dependency(new_task("B"), new_task("A"))
        dependency.active = False

        assert dependency.is_satisfied()
        assert not dependency.is_blocking()
        assert dependency.earliest_dependent_start() is None

    def test_missing_endpoint(self):
        dependency = TaskDependency(
            dependent_task_id=uuid.uuid4(),
            prerequisite_task_id=uuid.uuid4(),
        )
        assert dependency.is_satisfied()
        assert not dependency.is_blocking()
        assert dependency.description() == "Invalid dependency"


class TestEarliestStart:
    def test_finish_to_start_with_lag(self, new_task):
        order = new_task("Order motors", end_date=date(2026, 1, 10))
        dependency = new_dependency(new_task("Mount motors"), order, lag_hours=48)

        assert dependency.earliest_dependent_start() == datetime(2026, 1, 12, 0, 0)

    def test_negative_lag_is_lead_time(self, new_task):
        order = new_task("Order motors", end_date=date(2026, 1, 10))
        dependency = new_dependency(new_task("Mount motors"), order, lag_hours=-24)

        assert dependency.earliest_dependent_start() == datetime(2026, 1, 9, 0, 0)

    def test_start_to_start_uses_start_date(self, new_task):
        cad = new_task("CAD", start_date=date(2026, 1, 5), end_date=date(2026, 1, 20))
        dependency = new_dependency(new_task("Prototype"), cad, DependencyType.START_TO_START, lag_hours=8)

        assert dependency.earliest_dependent_start() == datetime(2026, 1, 5, 8, 0)

    @pytest.mark.parametrize("dependency_type", [DependencyType.FINISH_TO_FINISH, DependencyType.START_TO_FINISH, DependencyType.SOFT])
    def test_no_start_constraint(self, new_task, dependency_type):
        prerequisite = new_task("A", start_date=date(2026, 1, 5), end_date=date(2026, 1, 6))
        dependency = new_dependency(new_task("B"), prerequisite, dependency_type)

        assert dependency.earliest_dependent_start() is None

    def test_prerequisite_without_end_date(self, new_task):
        dependency = new_dependency(new_task("B"), new_task("A", start_date=date(2026, 1, 5)))
        assert dependency.earliest_dependent_start() is None


class TestWeightAndDescription:
    def test_weights(self, new_task):
        a, b = new_task("A"), new_task("B")
        weights = {t: new_dependency(b, a, t).critical_path_weight() for t in DependencyType}

        assert weights[DependencyType.BLOCKING] > weights[DependencyType.FINISH_TO_START]
        assert weights[DependencyType.FINISH_TO_START] > weights[DependencyType.START_TO_START]
        assert weights[DependencyType.START_TO_START] == weights[DependencyType.FINISH_TO_FINISH]
        assert weights[DependencyType.FINISH_TO_FINISH] > weights[DependencyType.START_TO_FINISH] > 0
        assert weights[DependencyType.SOFT] == 0

    def test_inactive_weight_is_zero(self, new_task):
        dependency = new_dependency(new_task("B"), new_task("A"), DependencyType.BLOCKING)
        dependency.active = False
        assert dependency.critical_path_weight() == 0

    def test_description(self, new_task):
        drive_base, wiring = new_task("Drive base"), new_task("Wiring")

        assert new_dependency(wiring, drive_base).description() == "Drive base → Wiring (FS)"
        assert (
            new_dependency(wiring, drive_base, DependencyType.SOFT, lag_hours=24).description()
            == "Drive base → Wiring (SOFT) (+24h lag)"
        )
        assert (
            new_dependency(wiring, drive_base, DependencyType.START_TO_START, lag_hours=-4).description()
            == "Drive base → Wiring (SS) (4h lead)"
        )


class TestConstruction:
    def test_default_type(self, new_task):
        assert new_dependency(new_task("B"), new_task("A")).dependency_type is DependencyType.FINISH_TO_START
        assert new_dependency(new_task("B"), new_task("A"), None).dependency_type is DependencyType.FINISH_TO_START

    def test_caches_project(self, new_task):
        b = new_task("B")
        dependency = new_dependency(b, new_task("A"))
        assert dependency.project_id == b.project_id

    def test_self_dependency(self, new_task):
        task = new_task("Bumpers")
        with pytest.raises(SelfDependencyError) as exc_info:
            new_dependency(task, task)
        assert "Bumpers" in exc_info.value.message

    @pytest.mark.parametrize("dependency_type", list(DependencyType))
    def test_cross_project(self, new_task, dependency_type):
        a = new_task("Arm")
        b = new_task("Intake", project_id=uuid.uuid4())
        with pytest.raises(CrossProjectError) as exc_info:
            new_dependency(b, a, dependency_type)
        assert exc_info.value.error_code == "cross_project_dependency"

    def test_cycle_with_graph(self, new_task):
        a, b, c = new_task("A"), new_task("B"), new_task("C")
        ab = new_dependency(a, b)  # A depends on B
        bc = new_dependency(b, c)  # B depends on C
        graph = DependencyGraph.from_dependencies([a, b, c], [ab, bc])

        with pytest.raises(CycleError) as exc_info:
            new_dependency(c, a, graph=graph)

        assert exc_info.value.labels == ["C", "A", "B", "C"]
        assert exc_info.value.path == [str(c.id), str(a.id), str(b.id), str(c.id)]
        assert "'A' already depends on 'C'" in exc_info.value.message

    def test_would_create_cycle(self, new_task):
        a, b = new_task("A"), new_task("B")
        ab = new_dependency(a, b)
        graph = DependencyGraph.from_dependencies([a, b], [ab])

        assert new_dependency(b, a).would_create_cycle(graph)
        assert not new_dependency(a, b, DependencyType.SOFT).would_create_cycle(graph)

    def test_duplicate_with_graph(self, new_task):
        a, b = new_task("A"), new_task("B")
        graph = DependencyGraph.from_dependencies([a, b], [new_dependency(b, a)])

        with pytest.raises(DuplicateEdgeError):
            new_dependency(b, a, graph=graph)
        # Another type between the same pair is a distinct edge
        assert new_dependency(b, a, DependencyType.SOFT, graph=graph).dependency_type is DependencyType.SOFT
