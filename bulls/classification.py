"""Role and sociometric status classification of BULL-S nominations."""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Set

import numpy as np

from bulls.models import (
    ClassificationDiagnostics,
    ClassificationResult,
    ClassificationThresholds,
    NOMINATION_TAGS,
    QuestionTag,
    RawAnswer,
    RiskLevel,
    Role,
    SocialStatus,
    Student,
)
from bulls.parsers import MalformedPayload, parse_nomination_payload

LOG = logging.getLogger(__name__)

DEFAULT_THRESHOLDS = ClassificationThresholds()

# Counter on NominationScores incremented for each kind of nomination
_TAG_FIELDS = {
    QuestionTag.VICTIM_NOMINATION: 'victim_score',
    QuestionTag.AGGRESSOR_NOMINATION: 'bully_score',
    QuestionTag.POSITIVE_AFFINITY_NOMINATION: 'positive_connections',
    QuestionTag.NEGATIVE_AFFINITY_NOMINATION: 'negative_connections',
}


@dataclass
class NominationScores:
    """Nominations received by one student."""
    victim_score: int = 0
    bully_score: int = 0
    positive_connections: int = 0
    negative_connections: int = 0


@dataclass
class ClassificationRun:
    """Output of classify_students."""
    results: List[ClassificationResult]
    diagnostics: ClassificationDiagnostics
    respondent_ids: Set[str] = field(default_factory=set)

    def by_student(self) -> Dict[str, ClassificationResult]:
        return {result.student_id: result for result in self.results}


def classify_role(
    victim_score: int,
    bully_score: int,
    thresholds: ClassificationThresholds = DEFAULT_THRESHOLDS
) -> Role:
    """
    Role from victim/aggressor nomination counts.

    Both scores must be strictly above `high_score_threshold` to count as high.

    Args:
        victim_score: Times nominated as victim
        bully_score: Times nominated as aggressor
        thresholds: Classification cut-offs

    Returns:
        Role
    """
    high_victim = victim_score > thresholds.high_score_threshold
    high_bully = bully_score > thresholds.high_score_threshold

    if high_victim and high_bully:
        return Role.BULLY_VICTIM
    elif high_victim:
        return Role.VICTIM
    elif high_bully:
        return Role.BULLY
    else:
        return Role.OBSERVER


def classify_status(
    positive: int,
    negative: int,
    thresholds: ClassificationThresholds = DEFAULT_THRESHOLDS
) -> SocialStatus:
    """
    Sociometric status from received positive/negative choices.

    A student nobody nominated is average. Otherwise rules are evaluated in
    order and the first match wins; counts between the low and high bands
    (e.g. 2 and 2) fall through to average.
    """
    t = thresholds
    if positive == 0 and negative == 0:
        return SocialStatus.AVERAGE
    if positive >= t.popular_min_positive and negative <= t.popular_max_negative:
        return SocialStatus.POPULAR
    if positive <= t.isolated_max_positive and negative <= t.isolated_max_negative:
        return SocialStatus.ISOLATED
    if positive <= t.rejected_max_positive and negative >= t.rejected_min_negative:
        return SocialStatus.REJECTED
    if positive >= t.controversial_min_positive and negative >= t.controversial_min_negative:
        return SocialStatus.CONTROVERSIAL
    return SocialStatus.AVERAGE


def get_risk_level(
    role: Role,
    negative_connections: int,
    thresholds: ClassificationThresholds = DEFAULT_THRESHOLDS
) -> RiskLevel:
    """Risk level for follow-up: bully-victims and rejected victims first."""
    if role == Role.BULLY_VICTIM or (
        role == Role.VICTIM and negative_connections > thresholds.high_risk_min_negative
    ):
        return RiskLevel.HIGH
    elif role in (Role.VICTIM, Role.BULLY):
        return RiskLevel.MEDIUM
    else:
        return RiskLevel.LOW


def get_role_color(role: Role) -> str:
    """Chart color for a role."""
    colors = {
        Role.VICTIM: '#FF6B6B',
        Role.BULLY: '#FF9E40',
        Role.BULLY_VICTIM: '#9775FA',
        Role.OBSERVER: '#4DABF7',
    }
    return colors.get(role, '#868E96')


def sociometric_index(count: int, roster_size: int) -> float:
    """Share of possible nominators (everyone but the student) as 0-100."""
    if roster_size <= 1:
        return 0.0
    return float(np.round(count / (roster_size - 1) * 100.0, 1))


def unique_roster(roster: Iterable[Student]) -> List[Student]:
    """Roster in input order with duplicate ids collapsed to the first."""
    seen = set()
    students = []
    for student in roster:
        if student.id in seen:
            LOG.debug("Duplicate roster entry for student %s ignored", student.id)
            continue
        seen.add(student.id)
        students.append(student)
    return students


def tally_nominations(
    roster_ids: Iterable[str],
    answers: Iterable[RawAnswer],
    question_tags: Mapping[str, QuestionTag],
    diagnostics: Optional[ClassificationDiagnostics] = None
) -> Dict[str, NominationScores]:
    """
    Count nominations received by each roster student.

    Every roster id starts at zero. Answers to questions that are not
    nomination questions are ignored; malformed payloads and nominees outside
    the roster are dropped and recorded in `diagnostics`.

    Args:
        roster_ids: Ids of the students in scope
        answers: Raw answers
        question_tags: question_id -> QuestionTag
        diagnostics: Optional counters updated in place

    Returns:
        Dict student_id -> NominationScores
    """
    scores = {student_id: NominationScores() for student_id in roster_ids}
    if diagnostics is None:
        diagnostics = ClassificationDiagnostics()

    for answer in answers:
        tag = question_tags.get(answer.question_id)
        if tag is None:
            diagnostics.untagged_answers += 1
            continue
        if tag not in NOMINATION_TAGS:
            continue

        parsed = parse_nomination_payload(answer.payload)
        if isinstance(parsed, MalformedPayload):
            diagnostics.malformed_payloads += 1
            LOG.warning(
                "Skipping malformed payload from student %s for question %s: %s",
                answer.student_id, answer.question_id, parsed.reason
            )
            continue

        counter = _TAG_FIELDS[tag]
        for nominee in parsed.ids:
            target = scores.get(nominee)
            if target is None:
                diagnostics.out_of_roster_nominations += 1
                LOG.debug("Ignoring nomination of %s, not in roster", nominee)
                continue
            setattr(target, counter, getattr(target, counter) + 1)

    return scores


def classify_students(
    roster: Iterable[Student],
    answers: Iterable[RawAnswer],
    question_tags: Mapping[str, QuestionTag],
    thresholds: ClassificationThresholds = DEFAULT_THRESHOLDS
) -> ClassificationRun:
    """
    Classify every roster student by role, status and risk.

    Args:
        roster: Students in scope
        answers: Raw answers for the group
        question_tags: question_id -> QuestionTag
        thresholds: Classification cut-offs

    Returns:
        ClassificationRun with one result per unique roster student
    """
    students = unique_roster(roster)
    answers = list(answers)
    roster_ids = [student.id for student in students]
    roster_set = set(roster_ids)

    diagnostics = ClassificationDiagnostics()
    scores = tally_nominations(roster_ids, answers, question_tags, diagnostics)

    respondent_ids = {answer.student_id for answer in answers if answer.student_id in roster_set}
    diagnostics.respondents = len(respondent_ids)

    results = []
    for student in students:
        s = scores[student.id]
        role = classify_role(s.victim_score, s.bully_score, thresholds)
        results.append(ClassificationResult(
            student_id=student.id,
            student_name=student.name,
            role=role,
            social_status=classify_status(s.positive_connections, s.negative_connections, thresholds),
            risk_level=get_risk_level(role, s.negative_connections, thresholds),
            positive_connections=s.positive_connections,
            negative_connections=s.negative_connections,
            victim_score=s.victim_score,
            bully_score=s.bully_score,
            popularity_index=sociometric_index(s.positive_connections, len(students)),
            rejection_index=sociometric_index(s.negative_connections, len(students)),
        ))

    if diagnostics.malformed_payloads or diagnostics.out_of_roster_nominations:
        LOG.info(
            "Classified %d students (%d malformed payloads, %d out-of-roster nominations dropped)",
            len(results), diagnostics.malformed_payloads, diagnostics.out_of_roster_nominations
        )

    return ClassificationRun(results=results, diagnostics=diagnostics, respondent_ids=respondent_ids)
