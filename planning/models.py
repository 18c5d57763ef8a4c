from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, List, Optional


PIPELINE_ROLES = ("SA", "DEV", "QA")
SECONDS_PER_HOUR = 3600
HOURS_PER_DAY = 8.0
DONE_STATUSES = ("done", "closed", "resolved", "killed")


class WarningType(str, Enum):
    NO_ESTIMATE = "NO_ESTIMATE"
    NO_CAPACITY = "NO_CAPACITY"
    CIRCULAR_DEPENDENCY = "CIRCULAR_DEPENDENCY"
    FLAGGED = "FLAGGED"


class Confidence(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


def is_done_status(status: Optional[str]) -> bool:
    return (status or "").strip().lower() in DONE_STATUSES


def iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class TeamMember:
    account_id: str
    display_name: str
    role: str
    hours_per_day: float
    active: bool = True


@dataclass
class PlanningConfig:
    wip_limit: Optional[int] = None
    role_wip_limits: Dict[str, int] = field(default_factory=dict)
    risk_buffer: float = 0.0
    country_code: str = "RU"
    planning_statuses: List[str] = field(default_factory=list)
    max_allocation_days: int = 3 * 365

    def allows_status(self, status: Optional[str]) -> bool:
        if not self.planning_statuses:
            return True
        allowed = {s.strip().lower() for s in self.planning_statuses}
        return (status or "").strip().lower() in allowed


@dataclass
class Team:
    team_id: str
    name: str
    members: List[TeamMember] = field(default_factory=list)
    config: PlanningConfig = field(default_factory=PlanningConfig)

    def active_members(self) -> List[TeamMember]:
        return [member for member in self.members if member.active]


@dataclass
class WorkItem:
    key: str
    summary: str
    status: Optional[str] = None
    priority: Optional[str] = None
    flagged: bool = False
    auto_score: float = 0.0
    estimates: Dict[str, int] = field(default_factory=dict)
    logged: Dict[str, int] = field(default_factory=dict)
    needs: List[str] = field(default_factory=list)
    components: List[str] = field(default_factory=list)
    blocked_by: List[str] = field(default_factory=list)
    epic_key: Optional[str] = None
    issue_type: str = "Story"
    rough_estimates: Dict[str, float] = field(default_factory=dict)

    @property
    def is_done(self) -> bool:
        return is_done_status(self.status)

    def has_estimates(self) -> bool:
        return any((seconds or 0) > 0 for seconds in self.estimates.values())

    def rough_hours(self, role: str) -> float:
        """Rough days for ``role`` as hours, used only while the item has no estimates."""
        if self.has_estimates():
            return 0.0
        return round((self.rough_estimates.get(role) or 0) * HOURS_PER_DAY, 2)

    def required_phases(self) -> List[str]:
        return [
            role for role in PIPELINE_ROLES
            if self.estimates.get(role, 0) > 0
            or self.rough_hours(role) > 0
            or role in self.needs
        ]

    def remaining_hours(self, role: str) -> float:
        remaining = max(0, self.estimates.get(role, 0) - self.logged.get(role, 0))
        return round(remaining / SECONDS_PER_HOUR, 2)


@dataclass
class Epic:
    key: str
    summary: str
    status: Optional[str] = None
    due_date: Optional[date] = None
    auto_score: float = 0.0
    team_id: Optional[str] = None
    stories: List[WorkItem] = field(default_factory=list)
    flagged: bool = False
    rough_estimates: Dict[str, float] = field(default_factory=dict)

    @property
    def is_done(self) -> bool:
        return is_done_status(self.status)

    def has_rough_estimates(self) -> bool:
        return any((days or 0) > 0 for days in self.rough_estimates.values())


@dataclass
class PlanningSnapshot:
    teams: Dict[str, Team] = field(default_factory=dict)
    epics: List[Epic] = field(default_factory=list)
    competencies: Dict[str, Dict[str, int]] = field(default_factory=dict)
    holidays: List[date] = field(default_factory=list)

    def epics_for_team(self, team_id: str) -> List[Epic]:
        return [epic for epic in self.epics if epic.team_id == team_id]


@dataclass
class PlanningWarning:
    item_key: str
    kind: WarningType
    message: str

    def to_dict(self):
        return {
            'issueKey': self.item_key,
            'type': self.kind.value,
            'message': self.message,
        }


@dataclass
class PhaseSchedule:
    assignee_id: Optional[str]
    assignee_name: Optional[str]
    start_date: Optional[date]
    end_date: Optional[date]
    hours: float
    no_capacity: bool = False

    @classmethod
    def no_capacity_for(cls, hours: float) -> "PhaseSchedule":
        return cls(None, None, None, None, hours, True)

    def to_dict(self):
        return {
            'assigneeAccountId': self.assignee_id,
            'assigneeDisplayName': self.assignee_name,
            'startDate': iso(self.start_date),
            'endDate': iso(self.end_date),
            'hours': self.hours,
            'noCapacity': self.no_capacity,
        }


@dataclass
class PhaseProgress:
    estimate_seconds: int
    logged_seconds: int
    completed: bool

    def to_dict(self):
        return {
            'estimateSeconds': self.estimate_seconds,
            'loggedSeconds': self.logged_seconds,
            'completed': self.completed,
        }


@dataclass
class PhaseAggregation:
    hours: float
    start_date: Optional[date]
    end_date: Optional[date]

    def to_dict(self):
        return {
            'hours': self.hours,
            'startDate': iso(self.start_date),
            'endDate': iso(self.end_date),
        }


@dataclass
class PlannedStory:
    story_key: str
    summary: str
    auto_score: float
    status: Optional[str]
    start_date: Optional[date]
    end_date: Optional[date]
    phases: Dict[str, PhaseSchedule]
    blocked_by: List[str]
    warnings: List[PlanningWarning]
    priority: Optional[str] = None
    flagged: bool = False
    total_estimate_seconds: int = 0
    total_logged_seconds: int = 0
    progress_percent: int = 0
    issue_type: str = "Story"
    role_progress: Dict[str, PhaseProgress] = field(default_factory=dict)

    def to_dict(self):
        return {
            'storyKey': self.story_key,
            'issueType': self.issue_type,
            'summary': self.summary,
            'autoScore': self.auto_score,
            'status': self.status,
            'startDate': iso(self.start_date),
            'endDate': iso(self.end_date),
            'phases': {
                role.lower(): phase.to_dict() for role, phase in self.phases.items()
            },
            'blockedBy': list(self.blocked_by),
            'warnings': [warning.to_dict() for warning in self.warnings],
            'priority': self.priority,
            'flagged': self.flagged,
            'totalEstimateSeconds': self.total_estimate_seconds,
            'totalLoggedSeconds': self.total_logged_seconds,
            'progressPercent': self.progress_percent,
            'roleProgress': {
                role: info.to_dict() for role, info in self.role_progress.items()
            },
        }


@dataclass
class PlannedEpic:
    epic_key: str
    summary: str
    auto_score: float
    start_date: Optional[date]
    end_date: Optional[date]
    stories: List[PlannedStory]
    phase_aggregation: Dict[str, PhaseAggregation]
    status: Optional[str]
    due_date: Optional[date]
    total_estimate_seconds: int = 0
    total_logged_seconds: int = 0
    progress_percent: int = 0
    role_progress: Dict[str, PhaseProgress] = field(default_factory=dict)
    stories_total: int = 0
    stories_active: int = 0
    is_rough_estimate: bool = False
    rough_estimates: Dict[str, float] = field(default_factory=dict)
    flagged: bool = False
    confidence: Confidence = Confidence.HIGH
    due_date_delta_days: Optional[int] = None
    admitted_on: Optional[date] = None
    queue_position: Optional[int] = None
    queued_until: Optional[date] = None

    def to_dict(self):
        return {
            'epicKey': self.epic_key,
            'summary': self.summary,
            'autoScore': self.auto_score,
            'startDate': iso(self.start_date),
            'endDate': iso(self.end_date),
            'stories': [story.to_dict() for story in self.stories],
            'phaseAggregation': {
                role: entry.to_dict() for role, entry in self.phase_aggregation.items()
            },
            'status': self.status,
            'dueDate': iso(self.due_date),
            'totalEstimateSeconds': self.total_estimate_seconds,
            'totalLoggedSeconds': self.total_logged_seconds,
            'progressPercent': self.progress_percent,
            'roleProgress': {
                role: info.to_dict() for role, info in self.role_progress.items()
            },
            'storiesTotal': self.stories_total,
            'storiesActive': self.stories_active,
            'isRoughEstimate': self.is_rough_estimate,
            'roughEstimates': dict(self.rough_estimates),
            'flagged': self.flagged,
            'confidence': self.confidence.value,
            'dueDateDeltaDays': self.due_date_delta_days,
            'admittedOn': iso(self.admitted_on),
            'queuePosition': self.queue_position,
            'queuedUntil': iso(self.queued_until),
        }


@dataclass
class AssigneeUtilization:
    display_name: str
    role: str
    total_hours: float
    effective_hours_per_day: float
    daily_load: Dict[date, float]

    def to_dict(self):
        return {
            'displayName': self.display_name,
            'role': self.role,
            'totalHoursAssigned': self.total_hours,
            'effectiveHoursPerDay': self.effective_hours_per_day,
            'dailyLoad': {
                day.isoformat(): hours for day, hours in sorted(self.daily_load.items())
            },
        }


@dataclass
class QueueEntry:
    epic_key: str
    queue_position: int
    queued_until: Optional[date]

    def to_dict(self):
        return {
            'epicKey': self.epic_key,
            'queuePosition': self.queue_position,
            'queuedUntil': iso(self.queued_until),
        }


@dataclass
class PlanningResult:
    team_id: str
    planning_date: date
    epics: List[PlannedEpic]
    warnings: List[PlanningWarning]
    assignee_utilization: Dict[str, AssigneeUtilization]
    wip_limit: Optional[int] = None
    role_wip_limits: Dict[str, int] = field(default_factory=dict)
    queue: List[QueueEntry] = field(default_factory=list)

    def to_dict(self):
        return {
            'teamId': self.team_id,
            'planningDate': self.planning_date.isoformat(),
            'epics': [epic.to_dict() for epic in self.epics],
            'warnings': [warning.to_dict() for warning in self.warnings],
            'assigneeUtilization': {
                account_id: self.assignee_utilization[account_id].to_dict()
                for account_id in sorted(self.assignee_utilization)
            },
            'wip': {
                'teamWipLimit': self.wip_limit,
                'roleWipLimits': dict(sorted(self.role_wip_limits.items())),
                'queue': [entry.to_dict() for entry in self.queue],
            },
        }
