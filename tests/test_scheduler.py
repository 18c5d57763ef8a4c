"""Tests for phase allocation onto member calendars."""

from datetime import date

import pytest

from planning.models import SECONDS_PER_HOUR, PlanningConfig, WarningType
from planning.scheduler import PhaseAllocator, base_phase_hours, earliest_available, least_loaded


TUESDAY = date(2026, 1, 6)
WEDNESDAY = date(2026, 1, 7)


@pytest.fixture
def allocator(calendar, monday):
    def _allocator(members, competencies=None, config=None, strategy=least_loaded):
        return PhaseAllocator(members, calendar, monday, competencies, config, strategy)
    return _allocator


class TestBasePhaseHours:
    def test_remaining_hours_in_pipeline_order(self, story):
        item = story('S-1', qa=2, sa=4, dev=12)
        assert list(base_phase_hours(item).items()) == [('SA', 4.0), ('DEV', 12.0), ('QA', 2.0)]

    def test_logged_time_is_subtracted(self, story):
        item = story('S-1', dev=12, logged={'DEV': 5 * SECONDS_PER_HOUR})
        assert base_phase_hours(item) == {'DEV': 7.0}

    def test_fully_logged_phase_is_complete(self, story):
        item = story('S-1', sa=4, dev=6, logged={'SA': 4 * SECONDS_PER_HOUR})
        assert base_phase_hours(item) == {'DEV': 6.0}

    def test_needed_phase_without_estimate_is_zero(self, story):
        item = story('S-1', dev=6, needs=['QA'])
        assert base_phase_hours(item) == {'DEV': 6.0, 'QA': 0.0}

    def test_rough_days_for_unestimated_story(self, story):
        item = story('S-1', rough_estimates={'SA': 0.5, 'QA': 1}, needs=['DEV'])
        assert base_phase_hours(item) == {'SA': 4.0, 'DEV': 0.0, 'QA': 8.0}


class TestPlanPhase:
    def test_dev_phase_spreads_over_days(self, allocator, member, monday):
        alloc = allocator([member('dev-1', 'DEV')])
        warnings = []
        phase = alloc.plan_phase('S-1', 'DEV', 12.0, [], monday, warnings)

        assert (phase.start_date, phase.end_date) == (monday, TUESDAY)
        assert phase.hours == 12.0
        assert phase.assignee_id == 'dev-1'
        assert alloc.loads['dev-1'].daily == {monday: 6.0, TUESDAY: 6.0}
        assert warnings == []

    def test_weekend_is_skipped(self, allocator, member):
        friday = date(2026, 1, 9)
        alloc = allocator([member('dev-1', 'DEV')])
        phase = alloc.plan_phase('S-1', 'DEV', 12.0, [], friday, [])
        assert (phase.start_date, phase.end_date) == (friday, date(2026, 1, 12))

    def test_start_before_planning_date_is_clamped(self, allocator, member, monday):
        alloc = allocator([member('dev-1', 'DEV')])
        phase = alloc.plan_phase('S-1', 'DEV', 3.0, [], date(2025, 12, 1), [])
        assert phase.start_date == monday

    def test_member_can_split_a_day(self, allocator, member, monday):
        alloc = allocator([member('dev-1', 'DEV', 8.0)])
        first = alloc.plan_phase('S-1', 'DEV', 3.0, [], monday, [])
        second = alloc.plan_phase('S-2', 'DEV', 7.0, [], monday, [])

        assert first.end_date == monday
        assert (second.start_date, second.end_date) == (monday, TUESDAY)
        assert alloc.loads['dev-1'].daily == {monday: 8.0, TUESDAY: 2.0}

    def test_least_loaded_balances_members(self, allocator, member, monday):
        alloc = allocator([member('dev-b', 'DEV'), member('dev-a', 'DEV')])
        first = alloc.plan_phase('S-1', 'DEV', 6.0, [], monday, [])
        second = alloc.plan_phase('S-2', 'DEV', 6.0, [], monday, [])

        assert first.assignee_id == 'dev-a'
        assert second.assignee_id == 'dev-b'
        assert second.start_date == monday

    def test_earliest_available_strategy(self, allocator, member, monday):
        members = [member('dev-a', 'DEV', 4.0), member('dev-b', 'DEV', 8.0)]
        busy = allocator(members, strategy=earliest_available)
        busy.loads['dev-a'].reserve(monday, 4.0)
        busy.loads['dev-b'].reserve(monday, 6.0)

        phase = busy.plan_phase('S-1', 'DEV', 2.0, [], monday, [])
        assert phase.assignee_id == 'dev-b'
        assert phase.start_date == monday

        balanced = allocator(members)
        balanced.loads['dev-a'].reserve(monday, 4.0)
        balanced.loads['dev-b'].reserve(monday, 6.0)
        assert balanced.plan_phase('S-1', 'DEV', 2.0, [], monday, []).assignee_id == 'dev-a'

    def test_inactive_members_are_ignored(self, allocator, member, monday):
        alloc = allocator([member('dev-1', 'DEV', active=False)])
        phase = alloc.plan_phase('S-1', 'DEV', 6.0, [], monday, [])
        assert phase.no_capacity

    def test_no_member_for_role(self, allocator, member, monday):
        alloc = allocator([member('dev-1', 'DEV')])
        warnings = []
        phase = alloc.plan_phase('S-1', 'QA', 4.0, [], monday, warnings)

        assert phase.no_capacity
        assert phase.hours == 4.0
        assert phase.start_date is None and phase.end_date is None
        assert [(w.item_key, w.kind) for w in warnings] == [('S-1', WarningType.NO_CAPACITY)]

    def test_competency_shortens_expert_work(self, allocator, member, monday):
        alloc = allocator([member('dev-1', 'DEV')], competencies={'dev-1': {'api': 5}})
        phase = alloc.plan_phase('S-1', 'DEV', 12.0, ['api'], monday, [])

        assert phase.hours == 8.4
        assert alloc.loads['dev-1'].daily == {monday: 6.0, TUESDAY: pytest.approx(2.4)}

    def test_risk_buffer_inflates_effort(self, allocator, member, monday):
        alloc = allocator([member('dev-1', 'DEV')], config=PlanningConfig(risk_buffer=0.5))
        phase = alloc.plan_phase('S-1', 'DEV', 6.0, [], monday, [])

        assert phase.hours == 9.0
        assert phase.end_date == TUESDAY

    def test_zero_hour_phase_is_instant(self, allocator, member, monday):
        alloc = allocator([member('qa-1', 'QA')])
        warnings = []
        phase = alloc.plan_phase('S-1', 'QA', 0.0, [], monday, warnings)

        assert not phase.no_capacity
        assert (phase.start_date, phase.end_date, phase.hours) == (monday, monday, 0.0)
        assert [w.kind for w in warnings] == [WarningType.NO_ESTIMATE]
        assert alloc.loads['qa-1'].daily == {}

    def test_zero_hour_phase_without_member(self, allocator, member, monday):
        alloc = allocator([member('dev-1', 'DEV')])
        warnings = []
        phase = alloc.plan_phase('S-1', 'QA', 0.0, [], monday, warnings)

        assert phase.no_capacity
        assert [w.kind for w in warnings] == [WarningType.NO_ESTIMATE, WarningType.NO_CAPACITY]

    def test_allocation_cap_commits_nothing(self, allocator, member, monday):
        alloc = allocator([member('dev-1', 'DEV')], config=PlanningConfig(max_allocation_days=1))
        warnings = []
        phase = alloc.plan_phase('S-1', 'DEV', 12.0, [], monday, warnings)

        assert phase.no_capacity
        assert phase.hours == 12.0
        assert alloc.loads['dev-1'].daily == {}
        assert alloc.loads['dev-1'].total_hours == 0.0
        assert [w.kind for w in warnings] == [WarningType.NO_CAPACITY]

    def test_role_wip_limit_delays_next_story(self, allocator, member, monday):
        config = PlanningConfig(role_wip_limits={'DEV': 1})
        alloc = allocator([member('dev-a', 'DEV'), member('dev-b', 'DEV')], config=config)
        first = alloc.plan_phase('S-1', 'DEV', 6.0, [], monday, [])
        second = alloc.plan_phase('S-2', 'DEV', 6.0, [], monday, [])

        assert (first.assignee_id, first.start_date) == ('dev-a', monday)
        assert (second.assignee_id, second.start_date) == ('dev-b', TUESDAY)

    def test_assignee_is_chosen_after_role_wip_delay(self, allocator, member, monday):
        config = PlanningConfig(role_wip_limits={'DEV': 1})
        alloc = allocator(
            [member('dev-a', 'DEV'), member('dev-b', 'DEV')], config=config, strategy=earliest_available
        )
        alloc.loads['dev-a'].reserve(monday, 6.0)
        alloc.loads['dev-b'].reserve(TUESDAY, 6.0)
        alloc.role_lanes['DEV'].occupy(0, TUESDAY)

        phase = alloc.plan_phase('S-1', 'DEV', 6.0, [], monday, [])
        assert (phase.assignee_id, phase.start_date, phase.end_date) == ('dev-a', TUESDAY, TUESDAY)


class TestPlanStory:
    def test_pipeline_runs_sa_dev_qa(self, allocator, member, story, monday):
        alloc = allocator([member('sa-1', 'SA'), member('dev-1', 'DEV'), member('qa-1', 'QA')])
        phases = alloc.plan_story(story('S-1', sa=4, dev=6, qa=3), monday, [])

        assert list(phases) == ['SA', 'DEV', 'QA']
        assert (phases['SA'].start_date, phases['SA'].end_date) == (monday, monday)
        assert (phases['DEV'].start_date, phases['DEV'].end_date) == (TUESDAY, TUESDAY)
        assert (phases['QA'].start_date, phases['QA'].end_date) == (WEDNESDAY, WEDNESDAY)

    def test_phase_never_starts_on_previous_phase_end_day(self, allocator, member, story, monday):
        alloc = allocator([member('sa-1', 'SA'), member('dev-1', 'DEV')])
        phases = alloc.plan_story(story('S-1', sa=1, dev=1), monday, [])
        assert phases['SA'].end_date == monday
        assert phases['DEV'].start_date == TUESDAY

    def test_skipped_roles_do_not_delay(self, allocator, member, story, monday):
        alloc = allocator([member('dev-1', 'DEV'), member('qa-1', 'QA')])
        phases = alloc.plan_story(story('S-1', dev=6, qa=2), monday, [])

        assert list(phases) == ['DEV', 'QA']
        assert phases['DEV'].start_date == monday
        assert phases['QA'].start_date == TUESDAY

    def test_needed_phase_without_estimate(self, allocator, member, story, monday):
        alloc = allocator([member('sa-1', 'SA'), member('dev-1', 'DEV')])
        warnings = []
        phases = alloc.plan_story(story('S-1', dev=6, needs=['SA']), monday, warnings)

        assert phases['SA'].hours == 0.0
        assert phases['SA'].start_date == monday
        assert phases['DEV'].start_date == monday
        assert [w.kind for w in warnings] == [WarningType.NO_ESTIMATE]
