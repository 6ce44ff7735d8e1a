#!/usr/bin/env python3
"""
Seed script to generate a large build-season task graph.

Generates a wave-structured DAG with realistic project structure:
- Multiple parallel tracks
- Diamond patterns (convergence points)
- A mix of dependency types and lags (shipping waits, overlaps)
- Milestones (zero duration)

Every edge goes through new_dependency() against the graph built so far,
so the result passes the same validation as edges created over the API.

Usage:
    python -m scripts.seed [--nodes 500] [--clear]

Options:
    --nodes N    Number of nodes to generate (default: 500)
    --clear      Clear existing data before seeding
    --project    Name of the project to create
    --seed       Random seed for a reproducible graph
    --refresh    Compute critical path markers after seeding
"""

import argparse
import asyncio
import random
import time
from datetime import date
from typing import List, Tuple
import uuid

from sqlalchemy import delete

from taskgraph.database import async_session_maker, init_db
from taskgraph.exceptions import DependencyValidationError
from taskgraph.models import DependencyType, Project, Task, TaskDependency
from taskgraph.services.critical_path import update_critical_path_markers
from taskgraph.services.dependencies import get_dependency_statistics, new_dependency
from taskgraph.services.graph import DependencyGraph

# Relative frequency of each type among generated edges
TYPE_WEIGHTS = {
    DependencyType.FINISH_TO_START: 60,
    DependencyType.START_TO_START: 10,
    DependencyType.FINISH_TO_FINISH: 8,
    DependencyType.START_TO_FINISH: 2,
    DependencyType.BLOCKING: 10,
    DependencyType.SOFT: 10,
}


async def clear_data():
    """Clear all existing data."""
    print("Clearing existing data...")
    async with async_session_maker() as session:
        await session.execute(delete(TaskDependency))
        await session.execute(delete(Task))
        await session.execute(delete(Project))
        await session.commit()
    print("Data cleared.")


async def create_project(name: str) -> Project:
    """Create a project for the tasks."""
    async with async_session_maker() as session:
        project = Project(
            name=name,
            description="Generated build-season project",
            start_date=date(2025, 1, 6),
        )
        session.add(project)
        await session.commit()
        return project


def _pick_lag(rng: random.Random, dependency_type: DependencyType) -> int:
    if dependency_type is DependencyType.SOFT:
        return 0
    roll = rng.random()
    if roll < 0.05:
        return rng.choice([24, 48, 72, 120])  # waiting on shipping or a vendor
    if roll < 0.15:
        return -rng.choice([2, 4, 8])  # overlap
    return 0


def generate_graph(
    project_id: uuid.UUID,
    num_nodes: int = 500,
    seed: int | None = None,
) -> Tuple[List[Task], List[TaskDependency]]:
    """
    Generate a realistic DAG structure.

    Strategy:
    - Create tasks in "waves" (levels)
    - Each wave depends on some tasks from the previous three waves
    - 10% of tasks are milestones (duration=0)

    Returns:
        Tuple of (tasks, dependencies)
    """
    rng = random.Random(seed)
    tasks: List[Task] = []
    dependencies: List[TaskDependency] = []
    graph = DependencyGraph(project_id)

    # Configuration
    num_waves = max(10, num_nodes // 50)  # ~50 tasks per wave
    num_waves = min(num_waves, num_nodes) or 1
    tasks_per_wave = num_nodes // num_waves
    start_date = date(2025, 1, 6)

    print(f"Generating {num_nodes} tasks in {num_waves} waves...")

    tasks_by_wave: List[List[Task]] = []
    types = list(TYPE_WEIGHTS)
    weights = list(TYPE_WEIGHTS.values())

    for wave in range(num_waves):
        wave_tasks = []
        wave_size = tasks_per_wave

        # Last wave gets remaining tasks
        if wave == num_waves - 1:
            wave_size = num_nodes - len(tasks)

        for i in range(wave_size):
            # 10% chance of milestone
            is_milestone = rng.random() < 0.1
            task = Task(
                title=f"Task W{wave:02d}-{i:03d}",
                description=f"Wave {wave}, Task {i}",
                estimated_duration_hours=0.0 if is_milestone else float(rng.randint(2, 40)),
                start_date=start_date if wave == 0 else None,
                project_id=project_id,
            )
            tasks.append(task)
            wave_tasks.append(task)
            graph.add_task(task)

        tasks_by_wave.append(wave_tasks)

        # Create dependencies from previous waves
        if wave > 0:
            # Prefer recent waves but occasionally reach back further
            available_waves = list(range(max(0, wave - 3), wave))
            for task in wave_tasks:
                # Each task depends on 1-3 tasks from previous waves
                num_deps = rng.randint(1, min(3, len(tasks_by_wave[wave - 1])))
                for _ in range(num_deps):
                    prerequisite = rng.choice(tasks_by_wave[rng.choice(available_waves)])
                    dependency_type = rng.choices(types, weights)[0]
                    try:
                        dependency = new_dependency(
                            task,
                            prerequisite,
                            dependency_type,
                            lag_hours=_pick_lag(rng, dependency_type),
                            graph=graph,
                        )
                    except DependencyValidationError:
                        # Same pair and type drawn twice
                        continue
                    graph.add_dependency(dependency)
                    dependencies.append(dependency)

    return tasks, dependencies


async def insert_batch(tasks: List[Task], dependencies: List[TaskDependency]):
    """Insert tasks and dependencies in batches for performance."""
    async with async_session_maker() as session:
        batch_size = 100

        # Insert tasks in batches
        print(f"Inserting {len(tasks)} tasks...")
        for i in range(0, len(tasks), batch_size):
            session.add_all(tasks[i:i + batch_size])
            await session.flush()
            if (i + batch_size) % 500 == 0:
                print(f"  Inserted {min(i + batch_size, len(tasks))} tasks...")

        # Insert dependencies in batches
        print(f"Inserting {len(dependencies)} dependencies...")
        for i in range(0, len(dependencies), batch_size):
            session.add_all(dependencies[i:i + batch_size])
            await session.flush()
            if (i + batch_size) % 500 == 0:
                print(f"  Inserted {min(i + batch_size, len(dependencies))} dependencies...")

        await session.commit()


async def refresh_markers(project_id: uuid.UUID):
    """Compute critical path markers in-process instead of through the worker."""
    async with async_session_maker() as session:
        critical = await update_critical_path_markers(session, project_id)
        await session.commit()
    print(f"Marked {critical} critical dependencies.")


async def get_stats(project_id: uuid.UUID, tasks: List[Task], dependencies: List[TaskDependency]):
    """Print statistics about the generated graph."""
    async with async_session_maker() as session:
        stats = await get_dependency_statistics(session, project_id)

    graph = DependencyGraph.from_dependencies(tasks, dependencies, project_id)
    num_roots = sum(1 for task in tasks if not graph.pre_dependencies(task.id))
    num_leaves = sum(1 for task in tasks if not graph.dependents(task.id))
    chain, weight = graph.heaviest_chain()

    print("\n=== Graph Statistics ===")
    print(f"Tasks:         {len(tasks)}")
    print(f"Dependencies:  {stats.total}")
    for dependency_type, count in stats.by_type.items():
        print(f"  {dependency_type.short_code:<6} {count}")
    print(f"Root tasks:    {num_roots} (no prerequisites)")
    print(f"Leaf tasks:    {num_leaves} (no dependents)")
    print(f"Avg deps/task: {stats.total / len(tasks) if tasks else 0:.2f}")
    print(f"Heaviest chain: {len(chain)} tasks, weight {weight:.0f}")


async def main():
    parser = argparse.ArgumentParser(description="Seed the database with a large task graph")
    parser.add_argument("--nodes", type=int, default=500, help="Number of tasks to create")
    parser.add_argument("--clear", action="store_true", help="Clear existing data first")
    parser.add_argument("--project", type=str, default="Build Season", help="Project name")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument("--refresh", action="store_true", help="Compute critical path markers after seeding")

    args = parser.parse_args()

    print("=== Taskgraph Seed Script ===")

    # Initialize database
    await init_db()

    if args.clear:
        await clear_data()

    # Create project
    project = await create_project(args.project)
    print(f"Created project: {project.name} ({project.id})")

    # Generate DAG
    start_time = time.time()
    tasks, dependencies = generate_graph(project.id, args.nodes, args.seed)
    print(f"Generation time: {time.time() - start_time:.2f}s")

    # Insert data
    start_time = time.time()
    await insert_batch(tasks, dependencies)
    print(f"Insert time: {time.time() - start_time:.2f}s")

    await get_stats(project.id, tasks, dependencies)

    if args.refresh:
        await refresh_markers(project.id)

    print("\n=== Seeding Complete ===")
    print(f"Project ID: {project.id}")


if __name__ == "__main__":
    asyncio.run(main())
