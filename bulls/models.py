"""Data models for the BULL-S Sociometric Analyzer."""

from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class QuestionTag(str, Enum):
    """Role a questionnaire item plays in the analysis."""
    AGGRESSOR_NOMINATION = "aggressor-nomination"
    VICTIM_NOMINATION = "victim-nomination"
    POSITIVE_AFFINITY_NOMINATION = "positive-affinity-nomination"
    NEGATIVE_AFFINITY_NOMINATION = "negative-affinity-nomination"
    AGGRESSION_FORM = "aggression-form"
    AGGRESSION_PLACE = "aggression-place"
    AGGRESSION_FREQUENCY = "aggression-frequency"
    PERCEIVED_SEVERITY = "perceived-severity"
    PERCEIVED_SAFETY = "perceived-safety"


NOMINATION_TAGS = frozenset({
    QuestionTag.AGGRESSOR_NOMINATION,
    QuestionTag.VICTIM_NOMINATION,
    QuestionTag.POSITIVE_AFFINITY_NOMINATION,
    QuestionTag.NEGATIVE_AFFINITY_NOMINATION,
})


class Role(str, Enum):
    VICTIM = "victim"
    BULLY = "bully"
    BULLY_VICTIM = "bully-victim"
    OBSERVER = "observer"


class SocialStatus(str, Enum):
    POPULAR = "popular"
    AVERAGE = "average"
    REJECTED = "rejected"
    ISOLATED = "isolated"
    CONTROVERSIAL = "controversial"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AggregationBasis(str, Enum):
    """Denominator used for group percentages."""
    ROSTER = "roster"
    RESPONDENTS = "respondents"


class Student(BaseModel):
    """Enrolled student, as supplied by the data source."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    group_id: Optional[str] = None
    age: Optional[int] = None
    gender: Optional[str] = None


class RawAnswer(BaseModel):
    """One stored questionnaire answer.

    `payload` is kept as it came from storage: usually serialized JSON text,
    sometimes an already decoded list.
    """
    model_config = ConfigDict(frozen=True)

    student_id: str
    question_id: str
    payload: Any = None


class ClassificationThresholds(BaseModel):
    """Cut-offs used by the role, status, risk and alert rules."""
    model_config = ConfigDict(frozen=True)

    high_score_threshold: int = 7
    popular_min_positive: int = 3
    popular_max_negative: int = 1
    isolated_max_positive: int = 1
    isolated_max_negative: int = 1
    rejected_max_positive: int = 1
    rejected_min_negative: int = 3
    controversial_min_positive: int = 3
    controversial_min_negative: int = 3
    high_risk_min_negative: int = 5
    isolation_alert_index: float = 80.0
    isolation_critical_index: float = 95.0
    rejection_alert_index: float = 40.0
    rejection_critical_index: float = 60.0


class ClassificationResult(BaseModel):
    """Per-student outcome of a classification run."""
    student_id: str
    student_name: str
    role: Role = Role.OBSERVER
    social_status: SocialStatus = SocialStatus.AVERAGE
    risk_level: RiskLevel = RiskLevel.LOW
    positive_connections: int = 0
    negative_connections: int = 0
    victim_score: int = 0
    bully_score: int = 0
    popularity_index: float = 0.0
    rejection_index: float = 0.0


class ClassificationDiagnostics(BaseModel):
    """Input records the engine had to drop, plus participation."""
    malformed_payloads: int = 0
    out_of_roster_nominations: int = 0
    untagged_answers: int = 0
    respondents: int = 0


class GroupAggregate(BaseModel):
    """Percentage breakdown of roles and statuses for a group."""
    roles: Dict[str, int]
    statuses: Dict[str, int]
    basis: AggregationBasis = AggregationBasis.ROSTER
    population: int = 0
    is_fallback: bool = False


class NetworkMetrics(BaseModel):
    """Positive-choice network figures (percentages)."""
    density: float
    reciprocity: float
    cohesion: float
    cohesion_category: str
    is_fallback: bool = False


class GroupSummary(BaseModel):
    group_id: str
    group_name: Optional[str] = None
    total_students: int
    respondents: int
    response_rate: int
    age_range: Optional[str] = None


class Alert(BaseModel):
    """Warning raised for a single student."""
    type: str
    severity: str
    description: str
    recommendations: List[str] = Field(default_factory=list)


class StudentAnalysis(BaseModel):
    """Individual analysis: classification plus narrative and alerts."""
    result: ClassificationResult
    observations: str
    recommended_actions: List[str]
    alerts: List[Alert] = Field(default_factory=list)


class GroupDashboard(BaseModel):
    """Everything a group dashboard renders."""
    group_id: str
    source: str
    summary: GroupSummary
    aggregate: GroupAggregate
    network: NetworkMetrics
    aggression_forms: Dict[str, int] = Field(default_factory=dict)
    aggression_places: Dict[str, int] = Field(default_factory=dict)
    students: List[ClassificationResult] = Field(default_factory=list)
    diagnostics: Optional[ClassificationDiagnostics] = None


class ClassifyRequest(BaseModel):
    """Request body for ad-hoc classification."""
    roster: List[Student]
    answers: List[RawAnswer]
    question_tags: Optional[Dict[str, QuestionTag]] = None
    basis: Optional[AggregationBasis] = None


class ClassifyResponse(BaseModel):
    success: bool
    message: str
    students: List[ClassificationResult]
    aggregate: GroupAggregate
    diagnostics: ClassificationDiagnostics


class UploadResponse(BaseModel):
    """Response from the roster/answers upload endpoint."""
    success: bool
    message: str
    group_id: str
    students: int
    answers: int
