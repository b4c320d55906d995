"""Unit tests for parsers module."""

from io import BytesIO

import pandas as pd
import pytest

from bulls.models import ClassificationThresholds, QuestionTag
from bulls.parsers import (
    DEFAULT_QUESTION_TAGS,
    MalformedPayload,
    Nominations,
    answers_from_frame,
    load_table,
    normalize_and_rename_columns,
    parse_choice_payload,
    parse_nomination_payload,
    parse_question_tags,
    parse_thresholds,
    roster_from_frame,
)


def test_parse_nomination_payload():
    """Test well-formed payloads."""
    assert parse_nomination_payload('["a", "b"]') == Nominations(('a', 'b'))
    assert parse_nomination_payload('[]') == Nominations(())
    assert parse_nomination_payload(['a', 7]) == Nominations(('a', '7'))
    assert parse_nomination_payload(b'["x"]') == Nominations(('x',))
    assert parse_nomination_payload('[" padded "]') == Nominations(('padded',))


def test_parse_nomination_payload_malformed():
    """Test that bad payloads are reported, not raised."""
    for payload in ['abc', '"abc"', '{"a": 1}', '12', '', None, 3.5, '[1.5]', '[true]', '[{"id": 1}]']:
        result = parse_nomination_payload(payload)
        assert isinstance(result, MalformedPayload), payload
        assert result.raw == payload
        assert result.reason


def test_parse_choice_payload():
    assert parse_choice_payload('["verbal", "social"]') == ['verbal', 'social']
    assert parse_choice_payload('verbal') == ['verbal']
    assert parse_choice_payload('"verbal"') == ['verbal']
    assert parse_choice_payload(['cyber', '']) == ['cyber']
    assert parse_choice_payload('') == []
    assert parse_choice_payload(None) == []


def test_parse_thresholds():
    """Test thresholds string parsing."""
    assert parse_thresholds('') == ClassificationThresholds()
    assert parse_thresholds(None) == ClassificationThresholds()

    thresholds = parse_thresholds('high_score_threshold:5, popular_min_positive:4,rejection_alert_index:50.5')
    assert thresholds.high_score_threshold == 5
    assert thresholds.popular_min_positive == 4
    assert thresholds.rejection_alert_index == 50.5
    # Untouched keys keep defaults
    assert thresholds.isolated_max_positive == 1

    assert parse_thresholds('high_score_threshold:8.0').high_score_threshold == 8


@pytest.mark.parametrize("value", [
    'unknown:3', 'high_score_threshold', 'high_score_threshold:abc', 'high_score_threshold:7.9',
])
def test_parse_thresholds_invalid(value):
    with pytest.raises(ValueError):
        parse_thresholds(value)


def test_parse_question_tags():
    tags = parse_question_tags('{"custom": "victim-nomination"}')
    assert tags['custom'] == QuestionTag.VICTIM_NOMINATION
    assert len(tags) == len(DEFAULT_QUESTION_TAGS) + 1

    assert parse_question_tags(None) == DEFAULT_QUESTION_TAGS
    assert parse_question_tags({'x': 'aggression-form'})['x'] == QuestionTag.AGGRESSION_FORM

    with pytest.raises(ValueError):
        parse_question_tags('{"custom": "friendship"}')
    with pytest.raises(ValueError):
        parse_question_tags('[1, 2]')


def test_normalize_and_rename_columns():
    df = pd.DataFrame({
        'Estudiante_ID': ['1'],
        'Pregunta ID': ['q1'],
        'Respuesta Texto': ['["2"]'],
    })

    normalized = normalize_and_rename_columns(df, "answers")

    assert list(normalized.columns) == ['student_id', 'question_id', 'payload']
    # Original frame untouched
    assert 'Estudiante_ID' in df.columns

    with pytest.raises(ValueError):
        normalize_and_rename_columns(df, "grades")


def test_roster_from_frame():
    df = pd.DataFrame({
        'Student ID': ['1', '2', ''],
        'Nombre': ['Ana', 'Carlos', 'Nobody'],
        'Apellido': ['García', 'López', ''],
        'Edad': ['11', 'n/a', ''],
    })

    students = roster_from_frame(df, group_id='6B')

    assert len(students) == 2
    assert students[0].id == '1'
    assert students[0].name == 'Ana García'
    assert students[0].group_id == '6B'
    assert students[0].age == 11
    assert students[1].age is None


def test_roster_from_frame_requires_id():
    with pytest.raises(ValueError):
        roster_from_frame(pd.DataFrame({'Nombre': ['Ana']}))


def test_answers_from_frame():
    df = pd.DataFrame({
        'student_id': ['1', '2', ''],
        'question_id': ['q1', 'q1', 'q1'],
        'answer': ['["2"]', 'garbage', '["1"]'],
    })

    answers = answers_from_frame(df)

    # Payloads are kept verbatim, rows without respondent dropped
    assert [(a.student_id, a.payload) for a in answers] == [('1', '["2"]'), ('2', 'garbage')]

    with pytest.raises(ValueError):
        answers_from_frame(pd.DataFrame({'student_id': ['1']}))


def test_load_table_csv():
    csv_bytes = b'student_id,question_id,payload\n1,q1,"[""2""]"\n,,\n'

    df = load_table(csv_bytes, 'answers.csv')

    assert len(df) == 1
    assert df['payload'].iloc[0] == '["2"]'


def test_load_table_excel_with_title_rows():
    buffer = BytesIO()
    frame = pd.DataFrame({'Student ID': ['1', '2'], 'Name': ['Ana', 'Carlos']})
    with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
        frame.to_excel(writer, index=False, startrow=2)

    df = load_table(buffer.getvalue(), 'roster.xlsx')
    students = roster_from_frame(df)

    assert [s.id for s in students] == ['1', '2']
    assert students[1].name == 'Carlos'


def test_load_table_rejects_other_types():
    with pytest.raises(ValueError):
        load_table(b'data', 'roster.pdf')


def test_load_table_corrupt_excel():
    with pytest.raises(ValueError, match='Could not read Excel file'):
        load_table(b'not a workbook', 'roster.xlsx')
