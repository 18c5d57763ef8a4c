"""Unified planning: turns a team's backlog snapshot into a day-by-day plan.

Rules:
1. Epics are planned by auto score (descending), after every epic holding a
   blocker story of theirs.
2. Each story runs SA -> DEV -> QA; one member per phase.
3. Members may split a day across stories (3h on A + 5h on B).
4. A blocked story starts after its blockers' last phase ends.
5. At most ``wip_limit`` epics are admitted at once; the rest queue.
6. At most ``role_wip_limits[role]`` stories sit in a role's phase at once.
7. Assignees are chosen by the algorithm, not taken from the tracker.
8. Stories without estimates, flagged stories and capacity gaps become
   warnings, never errors.
"""

import logging
from datetime import date
from typing import Dict, List, Optional

from .aggregator import ConfidencePolicy, default_confidence, plan_epic_result, plan_story_result
from .calendar import WorkCalendar
from .dependencies import (
    CycleBreakPolicy,
    break_cycles,
    build_dependency_graph,
    drop_lowest_score_edge,
    resolve_epic_precedence,
    topological_order,
)
from .errors import TeamNotFoundError
from .models import (
    HOURS_PER_DAY,
    AssigneeUtilization,
    Epic,
    PlannedEpic,
    PlanningResult,
    PlanningSnapshot,
    PlanningWarning,
    Team,
    WarningType,
    WorkItem,
)
from .scheduler import AssigneeStrategy, PhaseAllocator, least_loaded
from .wip import WipQueue


logger = logging.getLogger(__name__)


def eligible_epics(snapshot: PlanningSnapshot, team: Team) -> List[Epic]:
    return [
        epic for epic in snapshot.epics_for_team(team.team_id)
        if not epic.is_done and team.config.allows_status(epic.status)
    ]


def calendar_for(snapshot: PlanningSnapshot, team: Team) -> WorkCalendar:
    return WorkCalendar(snapshot.holidays, country_code=team.config.country_code)


def calculate_plan(
    team_id: str,
    snapshot: PlanningSnapshot,
    planning_date: date,
    calendar: Optional[WorkCalendar] = None,
    assignee_strategy: AssigneeStrategy = least_loaded,
    cycle_policy: CycleBreakPolicy = drop_lowest_score_edge,
    confidence_policy: ConfidencePolicy = default_confidence,
) -> PlanningResult:
    """Plan one team's backlog.

    Pure with respect to its arguments: the snapshot is read, never mutated,
    and identical inputs produce identical results.

    Raises:
        TeamNotFoundError: if ``team_id`` is not in the snapshot.
    """
    team = snapshot.teams.get(team_id)
    if team is None:
        raise TeamNotFoundError(team_id)

    config = team.config
    calendar = calendar or calendar_for(snapshot, team)
    logger.info('Starting unified planning for team %s on %s', team_id, planning_date)

    epics = eligible_epics(snapshot, team)
    epics_by_key = {epic.key: epic for epic in epics}
    warnings: List[PlanningWarning] = []

    done_keys = {
        story.key
        for epic in snapshot.epics_for_team(team_id)
        for story in epic.stories
        if story.is_done
    }
    candidates: List[WorkItem] = []
    epic_of: Dict[str, str] = {}
    for epic in epics:
        for story in epic.stories:
            if story.is_done:
                continue
            if story.flagged:
                warnings.append(PlanningWarning(
                    story.key, WarningType.FLAGGED, 'Story is flagged (work paused)'
                ))
                continue
            candidates.append(story)
            epic_of[story.key] = epic.key

    graph = build_dependency_graph(candidates, done_keys)
    break_cycles(graph, cycle_policy)
    epic_order = resolve_epic_precedence(
        graph, epic_of, {epic.key: epic.auto_score for epic in epics}, cycle_policy
    )
    warnings.extend(graph.warnings)

    rank = {key: position for position, key in enumerate(epic_order)}
    story_order = topological_order(
        graph,
        lambda handle: (rank[epic_of[graph.keys[handle]]], -graph.scores[handle], graph.keys[handle]),
    )
    stories_by_epic: Dict[str, List[WorkItem]] = {key: [] for key in epic_order}
    for handle in story_order:
        story = candidates[handle]
        stories_by_epic[epic_of[story.key]].append(story)

    cycle_warnings: Dict[str, List[PlanningWarning]] = {}
    for warning in graph.warnings:
        cycle_warnings.setdefault(warning.item_key, []).append(warning)

    allocator = PhaseAllocator(
        team.active_members(),
        calendar,
        planning_date,
        snapshot.competencies,
        config,
        assignee_strategy,
    )
    queue = WipQueue(config.wip_limit, allocator.start_date, calendar)
    end_dates: Dict[str, date] = {}
    planned_epics: List[PlannedEpic] = []

    for epic_key in epic_order:
        epic = epics_by_key[epic_key]
        admission = queue.admit(epic_key)
        planned_stories = []

        for story in stories_by_epic[epic_key]:
            story_warnings = list(cycle_warnings.get(story.key, []))
            if not story.required_phases():
                no_estimate = PlanningWarning(
                    story.key, WarningType.NO_ESTIMATE, 'Story has no estimates'
                )
                warnings.append(no_estimate)
                story_warnings.append(no_estimate)
                planned_stories.append(plan_story_result(story, {}, story_warnings))
                continue

            earliest = admission.admitted_on
            for blocker in graph.blocker_keys(story.key):
                blocker_end = end_dates.get(blocker)
                if blocker_end is not None:
                    earliest = max(earliest, calendar.next_workday(blocker_end))

            phase_warnings: List[PlanningWarning] = []
            phases = allocator.plan_story(story, earliest, phase_warnings)
            warnings.extend(phase_warnings)
            planned = plan_story_result(story, phases, story_warnings + phase_warnings)
            if planned.end_date is not None:
                end_dates[story.key] = planned.end_date
            planned_stories.append(planned)

        rough_phases = None
        if not epic.stories and epic.has_rough_estimates():
            logger.info('Planning epic %s by rough estimates (no stories)', epic_key)
            rough_hours = {
                role: round(days * HOURS_PER_DAY, 2)
                for role, days in epic.rough_estimates.items()
                if days and days > 0
            }
            rough_phases = allocator.plan_pipeline(
                epic_key, rough_hours, [], admission.admitted_on, warnings
            )

        planned_epic = plan_epic_result(epic, planned_stories, warnings, confidence_policy, rough_phases)
        planned_epic.admitted_on = admission.admitted_on
        planned_epic.queue_position = admission.queue_position
        planned_epic.queued_until = admission.queued_until
        queue.release(admission, planned_epic.end_date)
        planned_epics.append(planned_epic)

    utilization = {
        account_id: AssigneeUtilization(
            display_name=load.member.display_name,
            role=load.member.role,
            total_hours=round(load.total_hours, 2),
            effective_hours_per_day=load.hours_per_day,
            daily_load=dict(sorted(load.daily.items())),
        )
        for account_id, load in allocator.loads.items()
    }

    logger.info(
        'Unified planning completed for team %s: %d epics, %d warnings',
        team_id, len(planned_epics), len(warnings),
    )
    return PlanningResult(
        team_id=team_id,
        planning_date=planning_date,
        epics=planned_epics,
        warnings=warnings,
        assignee_utilization=utilization,
        wip_limit=config.wip_limit,
        role_wip_limits=dict(config.role_wip_limits),
        queue=list(queue.queue),
    )
