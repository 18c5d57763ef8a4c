"""Tests for competency-adjusted effort."""

import pytest

from planning.competency import adjusted_hours, competency_factor, competency_score, levels_for_members


class TestCompetencyFactor:
    """Piecewise-linear factor, rounded half-up to 3 decimals."""

    @pytest.mark.parametrize('score, expected', [
        (1.0, 1.600),
        (2.0, 1.300),
        (3.0, 1.000),
        (4.0, 0.850),
        (5.0, 0.700),
    ])
    def test_boundary_values(self, score, expected):
        assert competency_factor(score) == expected

    def test_fractional_score_rounds_to_three_decimals(self):
        # 1 + (3 - 2.5) * 0.3 = 1.15
        assert competency_factor(2.5) == 1.15
        # 1 - (3.3333 - 3) * 0.15 = 0.950005 -> 0.950
        assert competency_factor(3.3333) == 0.95

    def test_novice_takes_longer_expert_faster(self):
        assert competency_factor(1.5) > 1.0
        assert competency_factor(4.5) < 1.0


class TestCompetencyScore:
    """Average of matched component levels."""

    def test_empty_competencies_is_neutral(self):
        assert competency_score({}, ['api']) == 3.0
        assert competency_score(None, ['api']) == 3.0

    def test_empty_components_is_neutral(self):
        assert competency_score({'api': 5}, []) == 3.0
        assert competency_score({'api': 5}, None) == 3.0

    def test_no_overlap_is_neutral(self):
        assert competency_score({'api': 5}, ['ui']) == 3.0

    def test_partial_overlap_averages_matched_only(self):
        levels = {'api': 5, 'db': 2, 'ui': 1}
        assert competency_score(levels, ['api', 'db', 'billing']) == 3.5


class TestAdjustedHours:
    def test_neutral_score_keeps_hours(self):
        assert adjusted_hours(12.0, 3.0) == 12.0

    def test_expert_and_novice(self):
        assert adjusted_hours(10.0, 5.0) == pytest.approx(7.0)
        assert adjusted_hours(10.0, 1.0) == pytest.approx(16.0)


class TestLevelsForMembers:
    def test_builds_nested_lookup(self):
        rows = [
            {'accountId': 'a', 'component': 'api', 'level': 4},
            {'accountId': 'a', 'component': 'ui', 'level': 2},
            {'accountId': 'b', 'component': 'api', 'level': 5},
            {'accountId': None, 'component': 'api', 'level': 1},
        ]
        assert levels_for_members(rows) == {
            'a': {'api': 4, 'ui': 2},
            'b': {'api': 5},
        }
