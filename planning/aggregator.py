from datetime import date
from typing import Callable, Dict, Iterable, List, Optional, Set

from .models import (
    PIPELINE_ROLES,
    Confidence,
    Epic,
    PhaseAggregation,
    PhaseProgress,
    PhaseSchedule,
    PlannedEpic,
    PlannedStory,
    PlanningWarning,
    WarningType,
    WorkItem,
    is_done_status,
)


ConfidencePolicy = Callable[[Set[WarningType]], Confidence]


def default_confidence(kinds: Set[WarningType]) -> Confidence:
    """HIGH without capacity/dependency trouble, MEDIUM with capacity gaps only."""
    if WarningType.CIRCULAR_DEPENDENCY in kinds:
        return Confidence.LOW
    if WarningType.NO_CAPACITY in kinds:
        return Confidence.MEDIUM
    return Confidence.HIGH


def progress_percent(logged_seconds: int, estimate_seconds: int) -> int:
    if estimate_seconds <= 0:
        return 0
    return max(0, min(100, (logged_seconds * 100) // estimate_seconds))


def role_progress(story: WorkItem) -> Dict[str, PhaseProgress]:
    progress = {}
    for role in PIPELINE_ROLES:
        estimate = story.estimates.get(role, 0)
        logged = story.logged.get(role, 0)
        if estimate <= 0 and logged <= 0 and role not in story.needs:
            continue
        progress[role] = PhaseProgress(
            estimate_seconds=estimate,
            logged_seconds=logged,
            completed=story.is_done or (estimate > 0 and logged >= estimate),
        )
    return progress


def plan_story_result(
    story: WorkItem,
    phases: Dict[str, PhaseSchedule],
    warnings: List[PlanningWarning],
) -> PlannedStory:
    starts = [phase.start_date for phase in phases.values() if phase.start_date]
    ends = [phase.end_date for phase in phases.values() if phase.end_date]
    total_estimate = sum(story.estimates.get(role, 0) for role in PIPELINE_ROLES)
    total_logged = sum(story.logged.get(role, 0) for role in PIPELINE_ROLES)
    return PlannedStory(
        story_key=story.key,
        summary=story.summary,
        auto_score=story.auto_score,
        status=story.status,
        start_date=min(starts) if starts else None,
        end_date=max(ends) if ends else None,
        phases=phases,
        blocked_by=list(story.blocked_by),
        warnings=warnings,
        priority=story.priority,
        flagged=story.flagged,
        total_estimate_seconds=total_estimate,
        total_logged_seconds=total_logged,
        progress_percent=progress_percent(total_logged, total_estimate),
        role_progress=role_progress(story),
        issue_type=story.issue_type,
    )


def aggregate_phases(phase_maps: Iterable[Dict[str, PhaseSchedule]]) -> Dict[str, PhaseAggregation]:
    hours: Dict[str, float] = {}
    starts: Dict[str, date] = {}
    ends: Dict[str, date] = {}
    for phases in phase_maps:
        for role, phase in phases.items():
            hours[role] = hours.get(role, 0.0) + phase.hours
            if phase.start_date and (role not in starts or phase.start_date < starts[role]):
                starts[role] = phase.start_date
            if phase.end_date and (role not in ends or phase.end_date > ends[role]):
                ends[role] = phase.end_date

    aggregation = {}
    for role in PIPELINE_ROLES:
        if hours.get(role, 0.0) > 0 or role in starts:
            aggregation[role] = PhaseAggregation(round(hours.get(role, 0.0), 2), starts.get(role), ends.get(role))
    return aggregation


def merge_role_progress(stories: Iterable[PlannedStory]) -> Dict[str, PhaseProgress]:
    merged: Dict[str, PhaseProgress] = {}
    for story in stories:
        for role, info in story.role_progress.items():
            current = merged.get(role)
            if current is None:
                merged[role] = PhaseProgress(info.estimate_seconds, info.logged_seconds, info.completed)
                continue
            current.estimate_seconds += info.estimate_seconds
            current.logged_seconds += info.logged_seconds
            current.completed = current.completed and info.completed
    return {role: merged[role] for role in PIPELINE_ROLES if role in merged}


def due_date_delta(end_date: Optional[date], due_date: Optional[date]) -> Optional[int]:
    if end_date is None or due_date is None:
        return None
    return (end_date - due_date).days


def plan_epic_result(
    epic: Epic,
    planned_stories: List[PlannedStory],
    warnings: List[PlanningWarning],
    confidence_policy: ConfidencePolicy = default_confidence,
    rough_phases: Optional[Dict[str, PhaseSchedule]] = None,
) -> PlannedEpic:
    """Roll stories up into the epic view.

    ``warnings`` is the full warning list of the run; only the ones on this
    epic or its stories count towards confidence.
    """
    phase_maps = [story.phases for story in planned_stories]
    if rough_phases:
        phase_maps.append(rough_phases)

    starts = [phase.start_date for phases in phase_maps for phase in phases.values() if phase.start_date]
    ends = [phase.end_date for phases in phase_maps for phase in phases.values() if phase.end_date]
    start_date = min(starts) if starts else None
    end_date = max(ends) if ends else None

    total_estimate = sum(
        story.estimates.get(role, 0) for story in epic.stories for role in PIPELINE_ROLES
    )
    total_logged = sum(
        story.logged.get(role, 0) for story in epic.stories for role in PIPELINE_ROLES
    )

    touched = {epic.key} | {story.key for story in epic.stories}
    kinds = {warning.kind for warning in warnings if warning.item_key in touched}

    return PlannedEpic(
        epic_key=epic.key,
        summary=epic.summary,
        auto_score=epic.auto_score,
        start_date=start_date,
        end_date=end_date,
        stories=planned_stories,
        phase_aggregation=aggregate_phases(phase_maps),
        status=epic.status,
        due_date=epic.due_date,
        total_estimate_seconds=total_estimate,
        total_logged_seconds=total_logged,
        progress_percent=progress_percent(total_logged, total_estimate),
        role_progress=merge_role_progress(planned_stories),
        stories_total=len(epic.stories),
        stories_active=sum(1 for story in planned_stories if not is_done_status(story.status)),
        is_rough_estimate=bool(rough_phases),
        rough_estimates=dict(epic.rough_estimates),
        flagged=epic.flagged,
        confidence=confidence_policy(kinds),
        due_date_delta_days=due_date_delta(end_date, epic.due_date),
    )
