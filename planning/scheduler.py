import logging
from datetime import date
from typing import Callable, Dict, List, Optional, Tuple

from .calendar import WorkCalendar
from .capacity import EPSILON, AssigneeLoad, build_wip_lanes
from .competency import adjusted_hours, competency_score
from .models import (
    PIPELINE_ROLES,
    PhaseSchedule,
    PlanningConfig,
    PlanningWarning,
    TeamMember,
    WarningType,
    WorkItem,
)


logger = logging.getLogger(__name__)

AssigneeStrategy = Callable[[List[AssigneeLoad], date, WorkCalendar, int], Optional[AssigneeLoad]]


def least_loaded(candidates, start, calendar, horizon):
    """Greedy load balancing: fewest committed hours, then account id."""
    if not candidates:
        return None
    return min(candidates, key=lambda load: (load.total_hours, load.account_id))


def earliest_available(candidates, start, calendar, horizon):
    """Member whose first day with spare capacity comes soonest."""
    best = None
    best_day = None
    for load in sorted(candidates, key=lambda load: load.account_id):
        day = load.first_available_day(start, calendar, horizon)
        if day is None:
            continue
        if best is None or day < best_day:
            best, best_day = load, day
    return best


def base_phase_hours(story: WorkItem) -> Dict[str, float]:
    """Remaining hours per required role, in pipeline order.

    A role with an estimate that is fully logged is complete and left out.
    A story without any estimates falls back to its rough days per role.
    A role that is needed but has no estimate maps to 0 hours.
    """
    hours = {}
    for role in story.required_phases():
        if story.estimates.get(role, 0) > 0:
            remaining = story.remaining_hours(role)
            if remaining > 0:
                hours[role] = remaining
        elif story.rough_hours(role) > 0:
            hours[role] = story.rough_hours(role)
        else:
            hours[role] = 0.0
    return hours


class PhaseAllocator:
    """Allocates role phases onto member calendars for one planning run."""

    def __init__(
        self,
        members: List[TeamMember],
        calendar: WorkCalendar,
        start_date: date,
        competencies: Optional[Dict[str, Dict[str, int]]] = None,
        config: Optional[PlanningConfig] = None,
        strategy: AssigneeStrategy = least_loaded,
    ):
        self.calendar = calendar
        self.start_date = calendar.ensure_workday(start_date)
        self.competencies = competencies or {}
        self.config = config or PlanningConfig()
        self.strategy = strategy
        self.loads = {
            member.account_id: AssigneeLoad(member)
            for member in sorted(members, key=lambda m: m.account_id)
            if member.active and member.hours_per_day > 0
        }
        self.role_lanes = build_wip_lanes(
            {role: self.config.role_wip_limits.get(role) for role in PIPELINE_ROLES},
            self.start_date,
        )

    def candidates(self, role: str) -> List[AssigneeLoad]:
        return [load for load in self.loads.values() if load.member.role == role]

    def effort_hours(self, load: AssigneeLoad, base_hours: float, components: List[str]) -> float:
        score = competency_score(self.competencies.get(load.account_id), components)
        hours = adjusted_hours(base_hours, score) * (1.0 + self.config.risk_buffer)
        return round(hours, 2)

    def _walk(self, load: AssigneeLoad, hours: float, earliest: date) -> Optional[List[Tuple[date, float]]]:
        """Tentative day-by-day reservations, or None if the day cap is hit."""
        remaining = hours
        reservations = []
        for day, spare in load.spare_capacity(earliest, self.calendar, self.config.max_allocation_days):
            used = round(min(remaining, spare), 4)
            reservations.append((day, used))
            remaining = round(remaining - used, 4)
            if remaining <= EPSILON:
                return reservations
        return None

    def plan_phase(
        self,
        item_key: str,
        role: str,
        base_hours: float,
        components: List[str],
        earliest: date,
        warnings: List[PlanningWarning],
    ) -> PhaseSchedule:
        earliest = self.calendar.ensure_workday(max(earliest, self.start_date))
        if base_hours <= 0:
            warnings.append(PlanningWarning(
                item_key, WarningType.NO_ESTIMATE, f'{role} phase has no estimate'
            ))

        lane = self.role_lanes[role]
        slot_index = None
        if base_hours > 0:
            slot_index, slot_free = lane.earliest_slot()
            if slot_free is not None and slot_free > earliest:
                earliest = self.calendar.ensure_workday(slot_free)

        load = self.strategy(self.candidates(role), earliest, self.calendar, self.config.max_allocation_days)
        if load is None:
            warnings.append(PlanningWarning(
                item_key, WarningType.NO_CAPACITY, f'No {role} capacity in team'
            ))
            return PhaseSchedule.no_capacity_for(base_hours)

        if base_hours <= 0:
            return PhaseSchedule(
                load.account_id, load.member.display_name, earliest, earliest, 0.0, False
            )

        hours = self.effort_hours(load, base_hours, components)
        reservations = self._walk(load, hours, earliest)
        if reservations is None:
            warnings.append(PlanningWarning(
                item_key,
                WarningType.NO_CAPACITY,
                f'Could not fit {hours}h of {role} work within '
                f'{self.config.max_allocation_days} workdays',
            ))
            return PhaseSchedule.no_capacity_for(base_hours)

        for day, used in reservations:
            load.reserve(day, used)
        start, end = reservations[0][0], reservations[-1][0]
        lane.occupy(slot_index, self.calendar.next_workday(end))
        logger.debug('%s %s -> %s: %.2fh %s..%s', item_key, role, load.account_id, hours, start, end)
        return PhaseSchedule(load.account_id, load.member.display_name, start, end, hours, False)

    def plan_pipeline(
        self,
        item_key: str,
        phase_hours: Dict[str, float],
        components: List[str],
        earliest_start: date,
        warnings: List[PlanningWarning],
    ) -> Dict[str, PhaseSchedule]:
        """Plan roles strictly in SA -> DEV -> QA order."""
        current = earliest_start
        schedules = {}
        for role in PIPELINE_ROLES:
            if role not in phase_hours:
                continue
            schedule = self.plan_phase(
                item_key, role, phase_hours[role], components, current, warnings
            )
            schedules[role] = schedule
            if schedule.end_date is not None and schedule.hours > 0:
                current = self.calendar.next_workday(schedule.end_date)
            elif schedule.start_date is not None:
                current = schedule.start_date
        return schedules

    def plan_story(
        self,
        story: WorkItem,
        earliest_start: date,
        warnings: List[PlanningWarning],
    ) -> Dict[str, PhaseSchedule]:
        return self.plan_pipeline(
            story.key, base_phase_hours(story), story.components, earliest_start, warnings
        )
