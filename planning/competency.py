from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional


NEUTRAL_SCORE = 3.0
NOVICE_SLOPE = 0.3
EXPERT_SLOPE = 0.15


def competency_score(
    member_levels: Optional[Dict[str, int]],
    components: Optional[Iterable[str]],
) -> float:
    """Average member level over the item's components.

    Only components the member has a level for are counted. Returns the
    neutral score 3.0 when either side is empty or nothing matches.
    """
    if not member_levels or not components:
        return NEUTRAL_SCORE

    matched = [member_levels[c] for c in components if c in member_levels]
    if not matched:
        return NEUTRAL_SCORE
    return sum(matched) / len(matched)


def competency_factor(score: float) -> float:
    # 1 -> 1.6, 3 -> 1.0, 5 -> 0.7
    if score <= NEUTRAL_SCORE:
        factor = 1.0 + (NEUTRAL_SCORE - score) * NOVICE_SLOPE
    else:
        factor = 1.0 - (score - NEUTRAL_SCORE) * EXPERT_SLOPE
    return float(Decimal(repr(factor)).quantize(Decimal("0.001"), rounding=ROUND_HALF_UP))


def adjusted_hours(base_hours: float, score: float) -> float:
    return base_hours * competency_factor(score)


def levels_for_members(rows: List[dict]) -> Dict[str, Dict[str, int]]:
    """Build ``{accountId: {component: level}}`` from flat competency rows."""
    levels = {}
    for row in rows:
        account_id = row.get('accountId')
        component = row.get('component')
        if not account_id or not component:
            continue
        levels.setdefault(account_id, {})[component] = int(row.get('level', NEUTRAL_SCORE))
    return levels
