"""Shared fixtures for planning tests.

All scenarios start on Monday 2026-01-05 with a weekends-only calendar
unless a test says otherwise.
"""

from datetime import date

import pytest

from planning.calendar import WorkCalendar
from planning.models import Epic, PlanningConfig, PlanningSnapshot, Team, TeamMember, WorkItem


MONDAY = date(2026, 1, 5)


def hours(value):
    return int(value * 3600)


@pytest.fixture
def monday():
    return MONDAY


@pytest.fixture
def calendar():
    return WorkCalendar()


@pytest.fixture
def member():
    def _member(account_id, role, hours_per_day=6.0, active=True):
        return TeamMember(account_id, account_id.upper(), role, hours_per_day, active)
    return _member


@pytest.fixture
def story():
    def _story(key, sa=0, dev=0, qa=0, **kwargs):
        estimates = {
            role: hours(amount)
            for role, amount in (('SA', sa), ('DEV', dev), ('QA', qa))
            if amount
        }
        kwargs.setdefault('summary', f'Story {key}')
        return WorkItem(key=key, estimates=estimates, **kwargs)
    return _story


@pytest.fixture
def epic():
    def _epic(key, stories=None, auto_score=0.0, team_id='T1', **kwargs):
        kwargs.setdefault('summary', f'Epic {key}')
        kwargs.setdefault('status', 'In Progress')
        return Epic(key=key, stories=list(stories or []), auto_score=auto_score, team_id=team_id, **kwargs)
    return _epic


@pytest.fixture
def snapshot():
    def _snapshot(members, epics, config=None, competencies=None, holidays=None, team_id='T1'):
        team = Team(team_id, f'Team {team_id}', list(members), config or PlanningConfig())
        return PlanningSnapshot(
            teams={team_id: team},
            epics=list(epics),
            competencies=competencies or {},
            holidays=list(holidays or []),
        )
    return _snapshot
