from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from .calendar import WorkCalendar
from .models import TeamMember


EPSILON = 1e-6


@dataclass
class AssigneeLoad:
    """Hours one member has committed during a single planning run."""

    member: TeamMember
    total_hours: float = 0.0
    daily: Dict[date, float] = field(default_factory=dict)

    @property
    def account_id(self) -> str:
        return self.member.account_id

    @property
    def hours_per_day(self) -> float:
        return self.member.hours_per_day

    def available_hours(self, day: date) -> float:
        return max(0.0, self.hours_per_day - self.daily.get(day, 0.0))

    def first_available_day(self, start: date, calendar: WorkCalendar, horizon: int) -> Optional[date]:
        for day, _ in self.spare_capacity(start, calendar, horizon):
            return day
        return None

    def spare_capacity(
        self,
        start: date,
        calendar: WorkCalendar,
        horizon: Optional[int] = None,
    ) -> Iterator[Tuple[date, float]]:
        """Yield ``(workday, spare hours)`` from ``start`` onwards, skipping full days.

        With ``horizon`` the walk stops after that many workdays, full ones included.
        """
        for step, day in enumerate(calendar.workdays_from(start)):
            if horizon is not None and step >= horizon:
                return
            spare = self.available_hours(day)
            if spare > EPSILON:
                yield day, spare

    def reserve(self, day: date, hours: float):
        available = self.available_hours(day)
        if hours > available + EPSILON:
            raise ValueError(
                f'Cannot reserve {hours:.2f}h on {day} for {self.member.display_name}'
                f' - only {available:.2f}h available'
            )
        self.daily[day] = round(self.daily.get(day, 0.0) + hours, 4)
        self.total_hours = round(self.total_hours + hours, 4)


@dataclass
class WipLane:
    """Concurrency slots for one WIP scope (a role, or the team's epics).

    Each slot holds work back to back; ``available_at[i]`` is the first day
    slot ``i`` may take new work.
    """

    lane: str
    slot_count: Optional[int]
    available_at: List[date] = field(default_factory=list)

    @property
    def unbounded(self) -> bool:
        return self.slot_count is None

    def earliest_slot(self, exclude: Iterable[int] = ()) -> Tuple[Optional[int], Optional[date]]:
        if self.unbounded:
            return None, None
        held = set(exclude)
        free = [i for i in range(len(self.available_at)) if i not in held]
        if not free:
            raise ValueError(f'All {self.slot_count} {self.lane} slots are held')
        slot_index = min(free, key=lambda i: (self.available_at[i], i))
        return slot_index, self.available_at[slot_index]

    def occupy(self, slot_index: Optional[int], free_on: date):
        if slot_index is None:
            return
        self.available_at[slot_index] = max(self.available_at[slot_index], free_on)


def build_wip_lanes(
    limits: Dict[str, Optional[int]],
    start_date: date,
) -> Dict[str, WipLane]:
    lanes = {}
    for lane, limit in limits.items():
        if limit is None or limit <= 0:
            lanes[lane] = WipLane(lane=lane, slot_count=None)
            continue
        lanes[lane] = WipLane(
            lane=lane,
            slot_count=int(limit),
            available_at=[start_date for _ in range(int(limit))],
        )
    return lanes
