import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

from .calendar import WorkCalendar
from .capacity import build_wip_lanes
from .models import PIPELINE_ROLES, PlanningResult, QueueEntry, Team, iso


logger = logging.getLogger(__name__)

DEFAULT_PERIOD_DAYS = 30
OVERLOAD_THRESHOLD = 100.0
IDLE_THRESHOLD = 50.0
IMBALANCE_THRESHOLD = 40.0


@dataclass
class Admission:
    epic_key: str
    admitted_on: date
    slot_index: Optional[int] = None
    queue_position: Optional[int] = None
    queued_until: Optional[date] = None

    @property
    def queued(self) -> bool:
        return self.queue_position is not None


class WipQueue:
    """Greedy, non-preemptive admission of epics under a team WIP limit.

    Epics must be offered in planning order. An admitted epic keeps its slot
    until ``release`` records its projected completion; the next epic takes
    whichever slot frees first.
    """

    def __init__(self, limit: Optional[int], start_date: date, calendar: WorkCalendar):
        self.limit = limit
        self.start_date = start_date
        self.calendar = calendar
        self.lane = build_wip_lanes({'EPIC': limit}, start_date)['EPIC']
        self.slot_ends: Dict[int, Optional[date]] = {}
        self.held: Dict[int, str] = {}
        self.queue: List[QueueEntry] = []

    def admit(self, epic_key: str) -> Admission:
        slot_index, free_on = self.lane.earliest_slot(exclude=self.held)
        if slot_index is not None:
            self.held[slot_index] = epic_key
        if slot_index is None or free_on <= self.start_date:
            return Admission(epic_key, self.start_date, slot_index)

        queued_until = self.slot_ends.get(slot_index)
        entry = QueueEntry(epic_key, len(self.queue) + 1, queued_until)
        self.queue.append(entry)
        logger.debug('Epic %s queued at position %d until %s', epic_key, entry.queue_position, queued_until)
        return Admission(
            epic_key,
            self.calendar.ensure_workday(free_on),
            slot_index,
            queue_position=entry.queue_position,
            queued_until=queued_until,
        )

    def release(self, admission: Admission, end_date: Optional[date]):
        if admission.slot_index is None:
            return
        self.held.pop(admission.slot_index, None)
        if end_date is None:
            # Nothing scheduled: the slot is free again the day it was taken
            self.slot_ends[admission.slot_index] = admission.admitted_on
            self.lane.occupy(admission.slot_index, admission.admitted_on)
            return
        self.slot_ends[admission.slot_index] = end_date
        self.lane.occupy(admission.slot_index, self.calendar.next_workday(end_date))


@dataclass
class RoleLoadInfo:
    member_count: int
    capacity_hours: float
    assigned_hours: float
    utilization_percent: float
    status: str
    wip_limit: Optional[int] = None
    active_stories: int = 0

    def to_dict(self):
        return {
            'memberCount': self.member_count,
            'totalCapacityHours': self.capacity_hours,
            'totalAssignedHours': self.assigned_hours,
            'utilizationPercent': self.utilization_percent,
            'status': self.status,
            'wipLimit': self.wip_limit,
            'activeStories': self.active_stories,
        }


@dataclass
class RoleLoadAlert:
    type: str
    role: Optional[str]
    message: str

    def to_dict(self):
        return {'type': self.type, 'role': self.role, 'message': self.message}


@dataclass
class RoleLoadReport:
    team_id: str
    planning_date: date
    period_days: int
    roles: Dict[str, RoleLoadInfo]
    alerts: List[RoleLoadAlert] = field(default_factory=list)
    team_wip_limit: Optional[int] = None
    admitted_epics: int = 0
    queued_epics: int = 0

    def to_dict(self):
        return {
            'teamId': self.team_id,
            'planningDate': iso(self.planning_date),
            'periodDays': self.period_days,
            'roles': {role: info.to_dict() for role, info in self.roles.items()},
            'alerts': [alert.to_dict() for alert in self.alerts],
            'teamWip': {
                'limit': self.team_wip_limit,
                'admitted': self.admitted_epics,
                'queued': self.queued_epics,
            },
        }


def hours_in_period(phase, period_start: date, period_end: date, calendar: WorkCalendar) -> float:
    if phase is None or phase.start_date is None or phase.end_date is None:
        return 0.0
    if phase.end_date < period_start or phase.start_date > period_end:
        return 0.0

    overlap_start = max(phase.start_date, period_start)
    overlap_end = min(phase.end_date, period_end)
    total_days = calendar.count_workdays(phase.start_date, phase.end_date)
    if total_days == 0:
        return 0.0
    overlap_days = calendar.count_workdays(overlap_start, overlap_end)
    return round(phase.hours * overlap_days / total_days, 1)


def utilization_status(utilization: float, member_count: int) -> str:
    if member_count == 0:
        return 'NO_CAPACITY'
    if utilization > OVERLOAD_THRESHOLD:
        return 'OVERLOAD'
    if utilization < IDLE_THRESHOLD:
        return 'IDLE'
    return 'NORMAL'


def build_alerts(roles: Dict[str, RoleLoadInfo]) -> List[RoleLoadAlert]:
    alerts = []
    for role, info in roles.items():
        if info.status == 'OVERLOAD':
            alerts.append(RoleLoadAlert('ROLE_OVERLOAD', role, f'{role} overloaded: {info.utilization_percent}%'))
        elif info.status == 'IDLE':
            alerts.append(RoleLoadAlert('ROLE_IDLE', role, f'{role} underloaded: {info.utilization_percent}%'))
        elif info.status == 'NO_CAPACITY' and info.assigned_hours > 0:
            alerts.append(RoleLoadAlert('NO_CAPACITY', role, f'No {role} in team, but work is planned for the role'))

    staffed = [(role, info.utilization_percent) for role, info in roles.items() if info.status != 'NO_CAPACITY']
    if len(staffed) >= 2:
        busiest = max(staffed, key=lambda item: item[1])
        idlest = min(staffed, key=lambda item: item[1])
        if busiest[1] - idlest[1] > IMBALANCE_THRESHOLD:
            alerts.append(RoleLoadAlert(
                'IMBALANCE',
                None,
                f'Load imbalance: {busiest[0]} ({busiest[1]:.0f}%) vs {idlest[0]} ({idlest[1]:.0f}%)',
            ))
    return alerts


def role_load(
    result: PlanningResult,
    team: Team,
    calendar: WorkCalendar,
    period_days: int = DEFAULT_PERIOD_DAYS,
) -> RoleLoadReport:
    """Role utilization over the next ``period_days`` workdays, plus WIP telemetry."""
    period_start = calendar.ensure_workday(result.planning_date)
    period_end = calendar.add_workdays(period_start, max(period_days, 1) - 1)
    workdays = calendar.count_workdays(period_start, period_end)
    today = period_start
    members = team.active_members()

    assigned = {role: 0.0 for role in PIPELINE_ROLES}
    active = {role: 0 for role in PIPELINE_ROLES}
    for epic in result.epics:
        for story in epic.stories:
            for role, phase in story.phases.items():
                assigned[role] = assigned.get(role, 0.0) + hours_in_period(phase, period_start, period_end, calendar)
                if phase.start_date and phase.end_date and phase.start_date <= today <= phase.end_date:
                    active[role] = active.get(role, 0) + 1

    roles = {}
    for role in PIPELINE_ROLES:
        role_members = [member for member in members if member.role == role]
        capacity = round(sum(member.hours_per_day for member in role_members) * workdays, 1)
        assigned_hours = round(assigned[role], 1)
        utilization = round(assigned_hours * 100 / capacity, 1) if capacity > 0 else 0.0
        roles[role] = RoleLoadInfo(
            member_count=len(role_members),
            capacity_hours=capacity,
            assigned_hours=assigned_hours,
            utilization_percent=utilization,
            status=utilization_status(utilization, len(role_members)),
            wip_limit=team.config.role_wip_limits.get(role),
            active_stories=active[role],
        )

    report = RoleLoadReport(
        team_id=result.team_id,
        planning_date=result.planning_date,
        period_days=period_days,
        roles=roles,
        alerts=build_alerts(roles),
        team_wip_limit=result.wip_limit,
        admitted_epics=sum(1 for epic in result.epics if epic.queue_position is None),
        queued_epics=len(result.queue),
    )
    logger.info(
        'Role load for team %s: %s',
        result.team_id,
        ', '.join(f'{role}={info.utilization_percent}%' for role, info in roles.items()),
    )
    return report
