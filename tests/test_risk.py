"""
Tests for the project risk summary.
"""

from taskgraph.models import DependencyType, TaskDependency
from taskgraph.services.dependencies import new_dependency
from taskgraph.services.risk import (
    RiskLevel,
    assess_project_risk,
    find_external_constraints,
    recommend_schedule_changes,
)


class TestRiskLevels:
    def test_low(self, new_task):
        # Two independent chains of different length keep the critical share at half
        a = new_task("A", estimated_duration_hours=8, completed=True, progress=100)
        b = new_task("B", estimated_duration_hours=8)
        c = new_task("C", estimated_duration_hours=1)
        d = new_task("D", estimated_duration_hours=1)

        assessment = assess_project_risk([a, b, c, d], [new_dependency(b, a), new_dependency(d, c, DependencyType.SOFT)])

        assert assessment.level is RiskLevel.LOW
        assert assessment.factors == []
        assert assessment.metrics["cycle_count"] == 0

    def test_cycle_is_critical(self, new_task):
        a, b = new_task("A"), new_task("B")
        edges = []
        for dependent, prerequisite in ((a, b), (b, a)):
            edge = TaskDependency(dependent_task_id=dependent.id, prerequisite_task_id=prerequisite.id)
            edge.dependent_task, edge.prerequisite_task = dependent, prerequisite
            edges.append(edge)

        assessment = assess_project_risk([a, b], edges)

        assert assessment.level is RiskLevel.CRITICAL
        assert assessment.metrics["cycle_count"] == 1
        assert set(assessment.high_risk_task_ids) == {a.id, b.id}

    def test_external_constraint_is_medium(self, new_task):
        order = new_task("Order wheels", estimated_duration_hours=1, completed=True, progress=100)
        mount = new_task("Mount wheels", estimated_duration_hours=1)
        paint = new_task("Paint", estimated_duration_hours=80)
        decals = new_task("Decals", estimated_duration_hours=1)

        assessment = assess_project_risk(
            [order, mount, paint, decals],
            [new_dependency(mount, order, lag_hours=72)],
            external_constraint_lag_hours=24,
        )

        assert assessment.level is RiskLevel.MEDIUM
        assert assessment.factors == ["External dependencies with significant lead times"]
        assert assessment.high_risk_task_ids == [mount.id]

    def test_blocked_and_long_critical_chain_is_high(self, new_task):
        a = new_task("A", estimated_duration_hours=4)
        b = new_task("B", estimated_duration_hours=4)
        c = new_task("C", estimated_duration_hours=4)

        assessment = assess_project_risk([a, b, c], [new_dependency(b, a), new_dependency(c, b)])

        assert assessment.level is RiskLevel.HIGH
        assert "High share of blocked tasks" in assessment.factors
        assert "Long critical chain" in assessment.factors
        assert assessment.metrics["blocked_task_count"] == 2
        assert assessment.metrics["critical_task_count"] == 3
        assert assessment.metrics["project_duration_hours"] == 12


class TestExternalConstraints:
    def test_only_active_hard_edges_with_long_lag(self, new_task):
        a, b = new_task("A"), new_task("B")
        long_fs = new_dependency(b, a, lag_hours=48)
        long_soft = new_dependency(b, a, DependencyType.SOFT, lag_hours=48)
        short_ss = new_dependency(b, a, DependencyType.START_TO_START, lag_hours=4)
        inactive = new_dependency(b, a, DependencyType.BLOCKING, lag_hours=96)
        inactive.active = False

        assert find_external_constraints([long_fs, long_soft, short_ss, inactive], 24) == [long_fs]


class TestScheduleRecommendations:
    def test_recommendations(self, new_task):
        order = new_task("Order wheels", estimated_duration_hours=1, completed=True, progress=100)
        mount = new_task("Mount wheels", estimated_duration_hours=4)
        paint = new_task("Paint", estimated_duration_hours=2)
        decals = new_task("Decals", estimated_duration_hours=1)
        shipping = new_dependency(mount, order, lag_hours=72)

        result = recommend_schedule_changes(
            [order, mount, paint, decals],
            [shipping, new_dependency(decals, paint, DependencyType.SOFT)],
            review_lag_hours=24,
            external_constraint_lag_hours=48,
        )

        assert result.parallelizable_task_ids == [paint.id, decals.id]
        assert result.soft_dependency_task_ids == [decals.id]
        assert result.long_lag_dependency_ids == [shipping.id]
        assert result.external_constraint_ids == [shipping.id]
        assert result.potential_time_reduction_hours == 72
        assert result.recommendations == [
            "Consider parallelizing 2 independent tasks",
            "Review soft dependencies for 1 tasks - these could potentially start earlier",
            "Review lag time for dependency: Order wheels -> Mount wheels",
            "Start procurement/ordering early for 1 external dependencies",
        ]

    def test_lag_off_the_critical_path_saves_nothing(self, new_task):
        a = new_task("A", estimated_duration_hours=1)
        b = new_task("B", estimated_duration_hours=1)
        long_task = new_task("Long", estimated_duration_hours=100)
        waiting = new_dependency(b, a, lag_hours=30)

        result = recommend_schedule_changes(
            [a, b, long_task], [waiting], review_lag_hours=24, external_constraint_lag_hours=48
        )

        assert result.long_lag_dependency_ids == [waiting.id]
        assert result.external_constraint_ids == []
        assert result.potential_time_reduction_hours == 0

    def test_inactive_edges_are_ignored(self, new_task):
        a, b = new_task("A"), new_task("B")
        paused = new_dependency(b, a, lag_hours=96)
        paused.active = False

        result = recommend_schedule_changes([a, b], [paused], review_lag_hours=24, external_constraint_lag_hours=48)

        assert result.parallelizable_task_ids == [a.id, b.id]
        assert result.long_lag_dependency_ids == []
        assert result.external_constraint_ids == []

    def test_cyclic_graph_still_reports(self, new_task):
        a, b = new_task("A"), new_task("B")
        edges = []
        for dependent, prerequisite in ((a, b), (b, a)):
            edge = TaskDependency(dependent_task_id=dependent.id, prerequisite_task_id=prerequisite.id, lag_hours=30)
            edge.dependent_task, edge.prerequisite_task = dependent, prerequisite
            edges.append(edge)

        result = recommend_schedule_changes([a, b], edges, review_lag_hours=24, external_constraint_lag_hours=48)

        assert len(result.long_lag_dependency_ids) == 2
        assert result.potential_time_reduction_hours == 0
