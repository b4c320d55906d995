"""Static sample data shown when live data cannot be loaded."""

from typing import Dict, List

SAMPLE_INSTITUTIONS: List[Dict[str, str]] = [
    {'id': '1', 'name': 'Colegio La Salle'},
    {'id': '2', 'name': 'Instituto Tecnológico San José'},
]

SAMPLE_GROUPS: List[Dict[str, str]] = [
    {'id': '1', 'name': '6B', 'institution_id': '1'},
    {'id': '2', 'name': '8A', 'institution_id': '1'},
    {'id': '3', 'name': '8B', 'institution_id': '1'},
    {'id': '4', 'name': '9A', 'institution_id': '2'},
    {'id': '5', 'name': '10A', 'institution_id': '2'},
]

# Enrollment and participation per sample group
SAMPLE_GROUP_STATS: Dict[str, Dict] = {
    '1': {'total_students': 25, 'respondents': 22, 'age_range': '11-12'},
    '2': {'total_students': 30, 'respondents': 27, 'age_range': '13-14'},
    '3': {'total_students': 28, 'respondents': 25, 'age_range': '13-14'},
}

# Used for any group without specific figures
SAMPLE_OVERALL_STATS: Dict = {'total_students': 83, 'respondents': 74, 'age_range': '11-14'}


def get_sample_group(group_id: str) -> Dict:
    """Sample group record merged with its statistics."""
    group = next((g for g in SAMPLE_GROUPS if g['id'] == group_id), None)
    stats = SAMPLE_GROUP_STATS.get(group_id, SAMPLE_OVERALL_STATS)
    return {
        'group_name': group['name'] if group else None,
        **stats,
    }
