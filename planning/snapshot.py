"""Tracker snapshot loading.

The sync layer dumps one JSON document per refresh::

    {
      "teams": [{"id", "name", "config": {...}, "members": [...]}],
      "epics": [{"key", "teamId", "autoScore", "dueDate", "stories": [...]}],
      "competencies": [{"accountId", "component", "level"}],
      "holidays": ["2026-01-01", ...]
    }

Stories carry per-role ``estimates`` / ``logged`` in seconds.
"""

import json
from datetime import date
from typing import Optional

from .competency import levels_for_members
from .errors import SnapshotError
from .models import (
    PIPELINE_ROLES,
    Epic,
    PlanningConfig,
    PlanningSnapshot,
    Team,
    TeamMember,
    WorkItem,
)


def parse_date(value, field_name: str) -> Optional[date]:
    if value in (None, ''):
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as exc:
        raise SnapshotError(f'Invalid date for {field_name}: {value!r}') from exc


def parse_role(value, owner: str) -> str:
    role = str(value or '').strip().upper()
    if role not in PIPELINE_ROLES:
        raise SnapshotError(f'Unknown role {value!r} for {owner}')
    return role


def parse_role_map(raw, owner: str, cast=int) -> dict:
    result = {}
    for role, amount in (raw or {}).items():
        if amount is None:
            continue
        result[parse_role(role, owner)] = cast(amount)
    return result


def parse_config(raw: dict) -> PlanningConfig:
    raw = raw or {}
    config = PlanningConfig(
        wip_limit=int(raw['wipLimit']) if raw.get('wipLimit') is not None else None,
        role_wip_limits=parse_role_map(raw.get('roleWipLimits'), 'roleWipLimits'),
        risk_buffer=float(raw.get('riskBuffer', 0.0)),
        country_code=raw.get('countryCode', 'RU'),
        planning_statuses=list(raw.get('planningStatuses') or []),
    )
    if raw.get('maxAllocationDays'):
        config.max_allocation_days = int(raw['maxAllocationDays'])
    return config


def parse_member(raw: dict) -> TeamMember:
    account_id = raw.get('accountId')
    if not account_id:
        raise SnapshotError(f'Team member without accountId: {raw!r}')
    return TeamMember(
        account_id=account_id,
        display_name=raw.get('displayName') or account_id,
        role=parse_role(raw.get('role'), account_id),
        hours_per_day=float(raw.get('hoursPerDay', 6.0)),
        active=bool(raw.get('active', True)),
    )


def parse_story(raw: dict, epic_key: str) -> WorkItem:
    key = raw.get('key')
    if not key:
        raise SnapshotError(f'Story without key in epic {epic_key}')
    return WorkItem(
        key=key,
        summary=raw.get('summary', ''),
        status=raw.get('status'),
        priority=raw.get('priority'),
        flagged=bool(raw.get('flagged', False)),
        auto_score=float(raw.get('autoScore') or 0.0),
        estimates=parse_role_map(raw.get('estimates'), key),
        logged=parse_role_map(raw.get('logged'), key),
        needs=[parse_role(role, key) for role in raw.get('needs') or []],
        components=list(raw.get('components') or []),
        blocked_by=list(raw.get('blockedBy') or []),
        epic_key=epic_key,
        issue_type=raw.get('issueType', 'Story'),
        rough_estimates=parse_role_map(raw.get('roughEstimates'), key, cast=float),
    )


def parse_epic(raw: dict) -> Epic:
    key = raw.get('key')
    if not key:
        raise SnapshotError(f'Epic without key: {raw!r}')
    return Epic(
        key=key,
        summary=raw.get('summary', ''),
        status=raw.get('status'),
        due_date=parse_date(raw.get('dueDate'), f'{key}.dueDate'),
        auto_score=float(raw.get('autoScore') or 0.0),
        team_id=None if raw.get('teamId') is None else str(raw.get('teamId')),
        stories=[parse_story(story, key) for story in raw.get('stories') or []],
        flagged=bool(raw.get('flagged', False)),
        rough_estimates=parse_role_map(raw.get('roughEstimates'), key, cast=float),
    )


def parse_snapshot(data: dict) -> PlanningSnapshot:
    if not isinstance(data, dict):
        raise SnapshotError('Snapshot must be a JSON object')
    try:
        teams = {}
        for raw_team in data.get('teams') or []:
            team_id = str(raw_team['id'])
            teams[team_id] = Team(
                team_id=team_id,
                name=raw_team.get('name', team_id),
                members=[parse_member(member) for member in raw_team.get('members') or []],
                config=parse_config(raw_team.get('config')),
            )

        competencies = data.get('competencies') or {}
        if isinstance(competencies, list):
            competencies = levels_for_members(competencies)

        return PlanningSnapshot(
            teams=teams,
            epics=[parse_epic(epic) for epic in data.get('epics') or []],
            competencies=competencies,
            holidays=[parse_date(day, 'holidays') for day in data.get('holidays') or []],
        )
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise SnapshotError(f'Malformed snapshot: {exc}') from exc


def load_snapshot(path) -> PlanningSnapshot:
    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise SnapshotError(f'Failed to read snapshot {path}: {exc}') from exc
    return parse_snapshot(data)
