"""Unit tests for classification module."""

import json
import logging

import pytest

from bulls.classification import (
    classify_role,
    classify_status,
    classify_students,
    get_risk_level,
    get_role_color,
    sociometric_index,
    tally_nominations,
)
from bulls.models import (
    ClassificationDiagnostics,
    ClassificationThresholds,
    QuestionTag,
    RawAnswer,
    RiskLevel,
    Role,
    SocialStatus,
    Student,
)

TAGS = {
    'q-like': QuestionTag.POSITIVE_AFFINITY_NOMINATION,
    'q-dislike': QuestionTag.NEGATIVE_AFFINITY_NOMINATION,
    'q-bully': QuestionTag.AGGRESSOR_NOMINATION,
    'q-victim': QuestionTag.VICTIM_NOMINATION,
    'q-form': QuestionTag.AGGRESSION_FORM,
}


def make_roster(n):
    return [Student(id=f"s{i}", name=f"Student {i}") for i in range(1, n + 1)]


def nominate(question_id, target, times, first_respondent=1):
    """`times` answers from distinct respondents, each naming `target`."""
    return [
        RawAnswer(student_id=f"r{i}", question_id=question_id, payload=json.dumps([target]))
        for i in range(first_respondent, first_respondent + times)
    ]


def test_classify_role():
    """Test role thresholds (strictly greater than 7)."""
    assert classify_role(7, 7) == Role.OBSERVER
    assert classify_role(8, 0) == Role.VICTIM
    assert classify_role(0, 8) == Role.BULLY
    assert classify_role(8, 8) == Role.BULLY_VICTIM
    assert classify_role(0, 0) == Role.OBSERVER
    assert classify_role(8, 7) == Role.VICTIM


def test_classify_role_custom_threshold():
    thresholds = ClassificationThresholds(high_score_threshold=2)
    assert classify_role(3, 0, thresholds) == Role.VICTIM
    assert classify_role(2, 2, thresholds) == Role.OBSERVER


def test_classify_status():
    """Test status rules in precedence order."""
    assert classify_status(3, 1) == SocialStatus.POPULAR
    assert classify_status(1, 1) == SocialStatus.ISOLATED
    assert classify_status(1, 0) == SocialStatus.ISOLATED
    assert classify_status(0, 1) == SocialStatus.ISOLATED
    # Nobody nominated the student at all
    assert classify_status(0, 0) == SocialStatus.AVERAGE
    assert classify_status(2, 2) == SocialStatus.AVERAGE
    assert classify_status(0, 3) == SocialStatus.REJECTED
    assert classify_status(4, 4) == SocialStatus.CONTROVERSIAL

    # Middle band falls through to average
    assert classify_status(2, 0) == SocialStatus.AVERAGE
    assert classify_status(1, 2) == SocialStatus.AVERAGE
    assert classify_status(3, 2) == SocialStatus.AVERAGE
    assert classify_status(2, 3) == SocialStatus.AVERAGE


def test_get_risk_level():
    assert get_risk_level(Role.BULLY_VICTIM, 0) == RiskLevel.HIGH
    assert get_risk_level(Role.VICTIM, 6) == RiskLevel.HIGH
    assert get_risk_level(Role.VICTIM, 5) == RiskLevel.MEDIUM
    assert get_risk_level(Role.BULLY, 10) == RiskLevel.MEDIUM
    assert get_risk_level(Role.OBSERVER, 10) == RiskLevel.LOW


def test_sociometric_index():
    assert sociometric_index(3, 4) == 100.0
    assert sociometric_index(1, 4) == 33.3
    assert sociometric_index(5, 1) == 0.0
    assert sociometric_index(0, 0) == 0.0


def test_tally_nominations_counts_each_kind():
    answers = [
        RawAnswer(student_id='s1', question_id='q-victim', payload='["s2", "s3"]'),
        RawAnswer(student_id='s2', question_id='q-victim', payload='["s3"]'),
        RawAnswer(student_id='s3', question_id='q-bully', payload='["s1"]'),
        RawAnswer(student_id='s1', question_id='q-like', payload=['s2']),
        RawAnswer(student_id='s3', question_id='q-dislike', payload='["s2", "s2"]'),
    ]

    scores = tally_nominations(['s1', 's2', 's3'], answers, TAGS)

    assert scores['s2'].victim_score == 1
    assert scores['s3'].victim_score == 2
    assert scores['s1'].bully_score == 1
    assert scores['s2'].positive_connections == 1
    # Repeated nominations accumulate
    assert scores['s2'].negative_connections == 2
    assert scores['s1'].victim_score == 0


def test_tally_nominations_records_dropped_input(caplog):
    diagnostics = ClassificationDiagnostics()
    answers = [
        RawAnswer(student_id='s1', question_id='q-victim', payload='not json'),
        RawAnswer(student_id='s1', question_id='q-victim', payload='"s2"'),
        RawAnswer(student_id='s1', question_id='q-victim', payload='["s2", "outsider"]'),
        RawAnswer(student_id='s1', question_id='unknown', payload='["s2"]'),
        RawAnswer(student_id='s1', question_id='q-form', payload='["verbal"]'),
    ]

    with caplog.at_level(logging.WARNING, logger='bulls.classification'):
        scores = tally_nominations(['s1', 's2'], answers, TAGS, diagnostics)

    assert scores['s2'].victim_score == 1
    assert 'outsider' not in scores
    assert diagnostics.malformed_payloads == 2
    assert diagnostics.out_of_roster_nominations == 1
    assert diagnostics.untagged_answers == 1

    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 2
    assert all('malformed payload' in r.getMessage() for r in warnings)


def test_classify_students_defaults():
    """Students nobody nominated are observer / average."""
    roster = make_roster(3)
    run = classify_students(roster, [], TAGS)

    assert [r.student_id for r in run.results] == ['s1', 's2', 's3']
    for result in run.results:
        assert result.role == Role.OBSERVER
        assert result.social_status == SocialStatus.AVERAGE
        assert result.risk_level == RiskLevel.LOW
        assert result.victim_score == 0
        assert result.bully_score == 0


def test_classify_students_roles_from_nominations():
    roster = make_roster(4)
    answers = (
        nominate('q-victim', 's1', 8)
        + nominate('q-bully', 's2', 8)
        + nominate('q-victim', 's3', 8) + nominate('q-bully', 's3', 8)
        + nominate('q-victim', 's4', 7) + nominate('q-bully', 's4', 7)
    )

    results = classify_students(roster, answers, TAGS).by_student()

    assert results['s1'].role == Role.VICTIM
    assert results['s1'].victim_score == 8
    assert results['s2'].role == Role.BULLY
    assert results['s3'].role == Role.BULLY_VICTIM
    assert results['s3'].risk_level == RiskLevel.HIGH
    assert results['s4'].role == Role.OBSERVER


def test_classify_students_statuses_from_nominations():
    roster = make_roster(5)
    answers = (
        nominate('q-like', 's1', 3) + nominate('q-dislike', 's1', 1)
        + nominate('q-like', 's2', 1) + nominate('q-dislike', 's2', 1)
        + nominate('q-like', 's3', 2) + nominate('q-dislike', 's3', 2)
        + nominate('q-dislike', 's4', 3)
        + nominate('q-like', 's5', 4) + nominate('q-dislike', 's5', 4)
    )

    results = classify_students(roster, answers, TAGS).by_student()

    assert results['s1'].social_status == SocialStatus.POPULAR
    assert results['s2'].social_status == SocialStatus.ISOLATED
    assert results['s3'].social_status == SocialStatus.AVERAGE
    assert results['s4'].social_status == SocialStatus.REJECTED
    assert results['s5'].social_status == SocialStatus.CONTROVERSIAL
    assert results['s5'].popularity_index == 100.0


def test_classify_students_is_exhaustive_and_idempotent():
    roster = make_roster(6) + [Student(id='s1', name='Duplicate')]
    answers = (
        nominate('q-victim', 's1', 9)
        + nominate('q-like', 's2', 3)
        + [RawAnswer(student_id='s3', question_id='q-dislike', payload='{"bad": 1}')]
        + [RawAnswer(student_id='s3', question_id='q-bully', payload='["ghost"]')]
    )

    first = classify_students(roster, answers, TAGS)
    second = classify_students(roster, answers, TAGS)

    assert len(first.results) == 6
    assert first.results[0].student_name == 'Student 1'
    assert [r.model_dump() for r in first.results] == [r.model_dump() for r in second.results]
    for result in first.results:
        assert result.role in set(Role)
        assert result.social_status in set(SocialStatus)


def test_classify_students_order_insensitive():
    roster = make_roster(3)
    answers = nominate('q-victim', 's1', 8) + nominate('q-like', 's2', 3)

    forward = classify_students(roster, answers, TAGS)
    backward = classify_students(roster, list(reversed(answers)), TAGS)

    assert [r.model_dump() for r in forward.results] == [r.model_dump() for r in backward.results]


def test_classify_students_out_of_roster_ignored():
    roster = make_roster(2)
    answers = nominate('q-victim', 'ghost', 10)

    run = classify_students(roster, answers, TAGS)

    assert 'ghost' not in run.by_student()
    assert all(r.victim_score == 0 for r in run.results)
    assert run.diagnostics.out_of_roster_nominations == 10


def test_classify_students_respondents():
    roster = make_roster(3)
    answers = [
        RawAnswer(student_id='s1', question_id='q-like', payload='["s2"]'),
        RawAnswer(student_id='s1', question_id='q-dislike', payload='[]'),
        RawAnswer(student_id='outsider', question_id='q-like', payload='["s2"]'),
    ]

    run = classify_students(roster, answers, TAGS)

    assert run.respondent_ids == {'s1'}
    assert run.diagnostics.respondents == 1


@pytest.mark.parametrize("payload", [
    "plain text",
    '{"s1": true}',
    "42",
    "[",
    None,
    '[["s1"]]',
])
def test_malformed_payload_does_not_affect_scores(payload):
    roster = make_roster(2)
    answers = [RawAnswer(student_id='s2', question_id='q-victim', payload=payload)]

    run = classify_students(roster, answers, TAGS)

    assert all(r.victim_score == 0 for r in run.results)
    assert run.diagnostics.malformed_payloads == 1


def test_get_role_color():
    assert get_role_color(Role.VICTIM) == '#FF6B6B'
    assert get_role_color(Role.OBSERVER) == '#4DABF7'
    assert len({get_role_color(role) for role in Role}) == len(Role)
