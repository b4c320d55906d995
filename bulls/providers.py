"""Data sources and the live/sample dashboard providers."""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Protocol

from bulls.aggregation import (
    FALLBACK_AGGRESSION_FORMS,
    FALLBACK_AGGRESSION_PLACES,
    FALLBACK_COHESION,
    FALLBACK_ROLE_PERCENTAGES,
    FALLBACK_STATUS_PERCENTAGES,
    aggregate_choices,
    aggregate_group,
    get_cohesion_category,
    network_metrics,
    questions_with_tag,
)
from bulls.classification import (
    DEFAULT_THRESHOLDS,
    ClassificationRun,
    classify_students,
    unique_roster,
)
from bulls.models import (
    AggregationBasis,
    ClassificationThresholds,
    GroupAggregate,
    GroupDashboard,
    GroupSummary,
    NetworkMetrics,
    QuestionTag,
    RawAnswer,
    Student,
)
from bulls.parsers import DEFAULT_QUESTION_TAGS
from bulls.sample_data import get_sample_group

LOG = logging.getLogger(__name__)


class DataSourceError(Exception):
    """Raised when group data cannot be fetched."""


class GroupNotFoundError(DataSourceError, LookupError):
    """Raised for a group the data source does not know."""


class DataSource(Protocol):
    def get_roster(self, group_id: str) -> List[Student]: ...

    def get_raw_answers(self, group_id: str) -> List[RawAnswer]: ...

    def get_question_tags(self) -> Dict[str, QuestionTag]: ...


class InMemoryDataSource:
    """Group rosters and answers held in process memory."""

    def __init__(self, question_tags: Optional[Dict[str, QuestionTag]] = None):
        self._question_tags = dict(question_tags if question_tags is not None else DEFAULT_QUESTION_TAGS)
        self._rosters: Dict[str, List[Student]] = {}
        self._answers: Dict[str, List[RawAnswer]] = {}

    def put_group(self, group_id: str, roster: List[Student], answers: List[RawAnswer]) -> None:
        """Store (replace) a group's roster and answers."""
        self._rosters[group_id] = list(roster)
        self._answers[group_id] = list(answers)
        LOG.info("Stored group %s: %d students, %d answers", group_id, len(roster), len(answers))

    def group_ids(self) -> List[str]:
        return sorted(self._rosters)

    def get_roster(self, group_id: str) -> List[Student]:
        if group_id not in self._rosters:
            raise GroupNotFoundError(f"Group '{group_id}' has no roster loaded")
        return list(self._rosters[group_id])

    def get_raw_answers(self, group_id: str) -> List[RawAnswer]:
        if group_id not in self._answers:
            raise GroupNotFoundError(f"Group '{group_id}' has no answers loaded")
        return list(self._answers[group_id])

    def get_question_tags(self) -> Dict[str, QuestionTag]:
        return dict(self._question_tags)


class DashboardProvider(ABC):
    """Produces the dashboard of a group."""

    source_name = "unknown"

    @abstractmethod
    def group_dashboard(self, group_id: str) -> GroupDashboard:
        raise NotImplementedError


class LiveDashboardProvider(DashboardProvider):
    """Classifies the answers held by a data source."""

    source_name = "live"

    def __init__(
        self,
        source: DataSource,
        thresholds: ClassificationThresholds = DEFAULT_THRESHOLDS,
        basis: AggregationBasis = AggregationBasis.ROSTER
    ):
        self.source = source
        self.thresholds = thresholds
        self.basis = basis

    def classify_group(self, group_id: str) -> ClassificationRun:
        """Fetch a group and classify it. Fetch failures raise DataSourceError."""
        roster = self.source.get_roster(group_id)
        answers = self.source.get_raw_answers(group_id)
        return classify_students(roster, answers, self.source.get_question_tags(), self.thresholds)

    def group_dashboard(self, group_id: str) -> GroupDashboard:
        roster = self.source.get_roster(group_id)
        answers = self.source.get_raw_answers(group_id)
        tags = self.source.get_question_tags()

        run = classify_students(roster, answers, tags, self.thresholds)
        total = len(run.results)
        respondents = run.diagnostics.respondents
        ages = [student.age for student in unique_roster(roster) if student.age is not None]

        summary = GroupSummary(
            group_id=group_id,
            total_students=total,
            respondents=respondents,
            response_rate=round(respondents / total * 100) if total else 0,
            age_range=f"{min(ages)}-{max(ages)}" if ages else None,
        )

        return GroupDashboard(
            group_id=group_id,
            source=self.source_name,
            summary=summary,
            aggregate=aggregate_group(run, self.basis),
            network=network_metrics(roster, answers, tags),
            aggression_forms=aggregate_choices(
                answers, questions_with_tag(tags, QuestionTag.AGGRESSION_FORM), FALLBACK_AGGRESSION_FORMS
            ),
            aggression_places=aggregate_choices(
                answers, questions_with_tag(tags, QuestionTag.AGGRESSION_PLACE), FALLBACK_AGGRESSION_PLACES
            ),
            students=run.results,
            diagnostics=run.diagnostics,
        )


class SampleDashboardProvider(DashboardProvider):
    """Fixed example figures, used when live data is unavailable."""

    source_name = "sample"

    def group_dashboard(self, group_id: str) -> GroupDashboard:
        sample = get_sample_group(group_id)
        total = sample['total_students']
        respondents = sample['respondents']

        return GroupDashboard(
            group_id=group_id,
            source=self.source_name,
            summary=GroupSummary(
                group_id=group_id,
                group_name=sample['group_name'],
                total_students=total,
                respondents=respondents,
                response_rate=round(respondents / total * 100),
                age_range=sample['age_range'],
            ),
            aggregate=GroupAggregate(
                roles=dict(FALLBACK_ROLE_PERCENTAGES),
                statuses=dict(FALLBACK_STATUS_PERCENTAGES),
                population=0,
                is_fallback=True,
            ),
            network=NetworkMetrics(
                density=0.0,
                reciprocity=0.0,
                cohesion=FALLBACK_COHESION,
                cohesion_category=get_cohesion_category(FALLBACK_COHESION),
                is_fallback=True,
            ),
            aggression_forms=dict(FALLBACK_AGGRESSION_FORMS),
            aggression_places=dict(FALLBACK_AGGRESSION_PLACES),
        )


def load_group_dashboard(
    group_id: str,
    live: DashboardProvider,
    sample: Optional[DashboardProvider] = None
) -> GroupDashboard:
    """
    Live dashboard for a group, or the sample one if its data cannot be fetched.

    Only DataSourceError triggers the fallback; other errors propagate.
    """
    try:
        return live.group_dashboard(group_id)
    except DataSourceError as e:
        LOG.warning("Could not load group %s (%s), showing sample data", group_id, e)
        return (sample or SampleDashboardProvider()).group_dashboard(group_id)
