"""
Rank Conversion and Tie-Breaking

Orders teams by aggregated score, assigns rank and percentile, and resolves
ties with a fixed cascade of signals:

1. aggregated_score (primary)
2. per-criterion aggregate, one signal per criterion, heaviest first
3. mean_raw_total
4. median_raw_total
5. judge_count (more judges, more confidence)

Teams are sorted by the exact value of a signal, then split into clusters.
A cluster is opened by its highest team (the anchor) and holds every
following team within EPSILON of the anchor, so a cluster never spans more
than EPSILON. Only teams sharing a cluster go on to the next signal. Teams
still together after the whole cascade share a rank (standard competition
ranking: 1, 2, 2, 4) and are flagged for manual resolution.
"""

from fairrank.config import EPSILON
from fairrank.scoring.models import RankedResult, criteria_by_weight
from fairrank.utils import setup_logging

# --- Module Logger ---
logger = setup_logging(__name__)


def _criterion_signal(criterion):
    return lambda team: team.per_criterion_aggregate.get(criterion.id, 0.0)


def build_signals(criteria):
    """
    Build the ordered ranking signals for a round.

    Args:
        criteria: Criteria of the round

    Returns:
        List of (name, value getter, epsilon) triples, evaluated in order
    """
    signals = [("aggregated_score", lambda t: t.aggregated_score, EPSILON)]
    signals += [
        (f"criterion:{c.id}", _criterion_signal(c), EPSILON)
        for c in criteria_by_weight(criteria)
    ]
    signals.append(("mean_raw_total", lambda t: t.mean_raw_total, EPSILON))
    signals.append(("median_raw_total", lambda t: t.median_raw_total, EPSILON))
    signals.append(("judge_count", lambda t: t.judge_count, 0))
    return signals


def _comparator(value, epsilon):
    """Higher value ranks first; values within epsilon are equal."""
    def compare(a, b):
        value_a, value_b = value(a), value(b)
        if abs(value_a - value_b) <= epsilon:
            return 0
        return -1 if value_a > value_b else 1
    return compare


def build_comparators(criteria):
    """
    Pairwise comparators for every signal, primary score first.

    Returns:
        List of (name, comparator) pairs
    """
    return [(name, _comparator(value, epsilon)) for name, value, epsilon in build_signals(criteria)]


def build_tie_breakers(criteria):
    """The comparators that apply once aggregated scores are equal."""
    return build_comparators(criteria)[1:]


def compare_teams(a, b, comparators):
    """
    Run comparators in order until one is decisive.

    Returns:
        Tuple of (result, name of the deciding comparator or None)
    """
    for name, comparator in comparators:
        result = comparator(a, b)
        if result:
            return result, name
    return 0, None


def split_into_clusters(teams, value, epsilon):
    """
    Sort teams by value descending and cut them into clusters.

    A team joins the current cluster when it is within epsilon of the
    cluster's first member; otherwise it opens a new cluster.
    """
    ordered = sorted(teams, key=lambda t: (-value(t), t.team_id))
    clusters = []
    for team in ordered:
        if clusters and value(clusters[-1][0]) - value(team) <= epsilon:
            clusters[-1].append(team)
        else:
            clusters.append([team])
    return clusters


def _resolve(teams, signals, decided_by=None):
    """
    Partition teams into tied groups, best first.

    Returns:
        List of (group, name of the signal that separated the group from
        the one above it)
    """
    if len(teams) == 1 or not signals:
        return [(sorted(teams, key=lambda t: t.team_id), decided_by)]

    name, value, epsilon = signals[0]
    groups = []
    for i, cluster in enumerate(split_into_clusters(teams, value, epsilon)):
        groups.extend(_resolve(cluster, signals[1:], decided_by if i == 0 else name))
    return groups


def _percentile(position, total):
    if total == 1:
        return 100.0
    return 100.0 * (total - 1 - position) / (total - 1)


def _build_trace(team, criteria, compared_with, decided_by, tied_with):
    return {
        "aggregated_score": team.aggregated_score,
        "criteria": [
            {
                "criterion_id": c.id,
                "weight": c.weight,
                "value": team.per_criterion_aggregate.get(c.id, 0.0),
            }
            for c in criteria_by_weight(criteria)
        ],
        "mean_raw_total": team.mean_raw_total,
        "median_raw_total": team.median_raw_total,
        "judge_count": team.judge_count,
        "compared_with": compared_with,
        "decided_by": decided_by,
        "tied_with": tied_with,
        "epsilon": EPSILON,
    }


def convert_to_ranks(aggregated, criteria):
    """
    Convert aggregated team results into ranked results.

    Input order never matters: every sort is on exact values with team_id
    as the final key, and a tied group is listed by team_id.

    Args:
        aggregated: AggregatedTeamResult list of a round
        criteria: Criteria of the round

    Returns:
        List of RankedResult, best first
    """
    if not aggregated:
        return []

    groups = _resolve(list(aggregated), build_signals(criteria))
    total = len(aggregated)

    results = []
    previous = None
    tied_groups = 0
    position = 0
    for members, decided_by in groups:
        rank = position + 1
        member_ids = [m.team_id for m in members]
        is_tied = len(members) > 1
        if is_tied:
            tied_groups += 1
            logger.warning(f"Unresolved tie at rank {rank}: {member_ids} require manual resolution")

        for team in members:
            trace = _build_trace(
                team,
                criteria,
                compared_with=previous,
                decided_by=decided_by,
                tied_with=[m for m in member_ids if m != team.team_id],
            )
            results.append(RankedResult(
                team_id=team.team_id,
                rank=rank,
                percentile=_percentile(position, total),
                aggregated_score=team.aggregated_score,
                is_tied=is_tied,
                requires_manual_resolution=is_tied,
                tie_breaker_trace=trace,
            ))
            previous = team.team_id
        position += len(members)

    logger.info(f"Ranked {total} teams ({tied_groups} unresolved tie group(s))")
    return results
