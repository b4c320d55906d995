"""Group-level percentages for dashboards."""

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Set

import numpy as np
import pandas as pd

from bulls.classification import ClassificationRun, unique_roster
from bulls.models import (
    AggregationBasis,
    ClassificationResult,
    GroupAggregate,
    NetworkMetrics,
    QuestionTag,
    RawAnswer,
    Role,
    SocialStatus,
    Student,
)
from bulls.parsers import Nominations, parse_choice_payload, parse_nomination_payload

LOG = logging.getLogger(__name__)

# Distributions shown when a group has nobody to count
FALLBACK_ROLE_PERCENTAGES: Dict[str, int] = {
    Role.BULLY.value: 15,
    Role.VICTIM.value: 20,
    Role.BULLY_VICTIM.value: 5,
    Role.OBSERVER.value: 60,
}

FALLBACK_STATUS_PERCENTAGES: Dict[str, int] = {
    SocialStatus.POPULAR.value: 25,
    SocialStatus.AVERAGE.value: 40,
    SocialStatus.ISOLATED.value: 15,
    SocialStatus.REJECTED.value: 12,
    SocialStatus.CONTROVERSIAL.value: 8,
}

FALLBACK_AGGRESSION_FORMS: Dict[str, int] = {
    'physical': 35,
    'verbal': 65,
    'social': 45,
    'cyber': 25,
    'exclusion': 40,
    'intimidation': 30,
}

FALLBACK_AGGRESSION_PLACES: Dict[str, int] = {
    'classroom': 40,
    'playground': 35,
    'corridors': 15,
    'bathrooms': 10,
    'outside school': 5,
}

FALLBACK_COHESION = 72.0


def round_percentage(values) -> np.ndarray:
    """Round half up to whole percent."""
    return np.floor(np.asarray(values, dtype=float) + 0.5).astype(int)


def _percentages(labels: List[str], categories: Iterable[str]) -> Dict[str, int]:
    counts = pd.Series(labels, dtype=object).value_counts()
    categories = list(categories)
    raw = [counts.get(category, 0) / len(labels) * 100.0 for category in categories]
    return dict(zip(categories, (int(v) for v in round_percentage(raw))))


def _select(results: Iterable[ClassificationResult], basis_ids: Optional[Set[str]]) -> List[ClassificationResult]:
    if basis_ids is None:
        return list(results)
    return [result for result in results if result.student_id in basis_ids]


def aggregate_roles(
    results: Iterable[ClassificationResult],
    basis_ids: Optional[Set[str]] = None
) -> Dict[str, int]:
    """
    Percentage of students in each role.

    Args:
        results: Classified students
        basis_ids: Restrict the denominator to these ids (None = all results)

    Returns:
        Dict role -> whole percent; the fallback distribution when empty
    """
    selected = _select(results, basis_ids)
    if not selected:
        return dict(FALLBACK_ROLE_PERCENTAGES)
    return _percentages([r.role.value for r in selected], (role.value for role in Role))


def aggregate_statuses(
    results: Iterable[ClassificationResult],
    basis_ids: Optional[Set[str]] = None
) -> Dict[str, int]:
    """Percentage of students in each sociometric status (see aggregate_roles)."""
    selected = _select(results, basis_ids)
    if not selected:
        return dict(FALLBACK_STATUS_PERCENTAGES)
    return _percentages([r.social_status.value for r in selected], (status.value for status in SocialStatus))


def aggregate_group(
    run: ClassificationRun,
    basis: AggregationBasis = AggregationBasis.ROSTER
) -> GroupAggregate:
    """
    Role and status breakdown of a classification run.

    The same denominator is used for both dimensions: every classified
    roster student, or only those who answered at least one question.
    """
    basis_ids = run.respondent_ids if basis == AggregationBasis.RESPONDENTS else None
    population = len(_select(run.results, basis_ids))

    if population == 0:
        LOG.info("No students to aggregate on %s basis, using fallback distribution", basis.value)
        return GroupAggregate(
            roles=dict(FALLBACK_ROLE_PERCENTAGES),
            statuses=dict(FALLBACK_STATUS_PERCENTAGES),
            basis=basis,
            population=0,
            is_fallback=True,
        )

    return GroupAggregate(
        roles=aggregate_roles(run.results, basis_ids),
        statuses=aggregate_statuses(run.results, basis_ids),
        basis=basis,
        population=population,
    )


def aggregate_choices(
    answers: Iterable[RawAnswer],
    question_ids: Iterable[str],
    fallback: Optional[Dict[str, int]] = None
) -> Dict[str, int]:
    """
    Share of respondents selecting each option of choice questions.

    Options are counted once per respondent, so with multiple selection the
    percentages need not add up to 100. Ordered by frequency.

    Args:
        answers: Raw answers
        question_ids: Questions to include
        fallback: Returned (copied) when nobody answered

    Returns:
        Dict option -> whole percent
    """
    question_ids = set(question_ids)
    selections = {}
    for answer in answers:
        if answer.question_id not in question_ids:
            continue
        options = parse_choice_payload(answer.payload)
        if options:
            selections.setdefault(answer.student_id, set()).update(options)

    if not selections:
        return dict(fallback or {})

    counts = pd.Series([option for chosen in selections.values() for option in chosen]).value_counts()
    counts = counts.sort_index(kind='stable').sort_values(ascending=False, kind='stable')
    percentages = round_percentage(counts.values / len(selections) * 100.0)
    return {str(option): int(pct) for option, pct in zip(counts.index, percentages)}


def questions_with_tag(question_tags: Mapping[str, QuestionTag], tag: QuestionTag) -> List[str]:
    return [question_id for question_id, t in question_tags.items() if t == tag]


def get_cohesion_category(value: float) -> str:
    """Category label for a cohesion percentage."""
    if value < 40:
        return 'low'
    elif value < 60:
        return 'medium'
    elif value < 80:
        return 'high'
    return 'optimal'


def network_metrics(
    roster: Iterable[Student],
    answers: Iterable[RawAnswer],
    question_tags: Mapping[str, QuestionTag]
) -> NetworkMetrics:
    """
    Density and reciprocity of the positive-choice network.

    Only choices between roster members count; self-choices and repeated
    choices of the same classmate are counted once. Cohesion is the share of
    reciprocated choices. Without any choice the fallback cohesion is used.
    """
    roster_ids = {student.id for student in unique_roster(roster)}
    positive_questions = set(questions_with_tag(question_tags, QuestionTag.POSITIVE_AFFINITY_NOMINATION))

    edges = set()
    for answer in answers:
        if answer.question_id not in positive_questions or answer.student_id not in roster_ids:
            continue
        parsed = parse_nomination_payload(answer.payload)
        if not isinstance(parsed, Nominations):
            continue
        for nominee in parsed.ids:
            if nominee in roster_ids and nominee != answer.student_id:
                edges.add((answer.student_id, nominee))

    if not edges:
        return NetworkMetrics(
            density=0.0,
            reciprocity=0.0,
            cohesion=FALLBACK_COHESION,
            cohesion_category=get_cohesion_category(FALLBACK_COHESION),
            is_fallback=True,
        )

    n = len(roster_ids)
    density = len(edges) / (n * (n - 1)) * 100.0
    reciprocal = sum(1 for source, target in edges if (target, source) in edges)
    reciprocity = reciprocal / len(edges) * 100.0

    return NetworkMetrics(
        density=round(density, 1),
        reciprocity=round(reciprocity, 1),
        cohesion=round(reciprocity, 1),
        cohesion_category=get_cohesion_category(reciprocity),
    )
