class PlanningError(Exception):
    """Base class for structural planning failures."""


class TeamNotFoundError(PlanningError):
    def __init__(self, team_id):
        super().__init__(f'Team not found: {team_id}')
        self.team_id = team_id


class SnapshotError(PlanningError):
    """Raised when a tracker snapshot cannot be turned into planning input."""
