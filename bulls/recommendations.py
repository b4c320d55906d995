"""Individual observations, recommended actions and alerts."""

from typing import List, Tuple

from bulls.classification import DEFAULT_THRESHOLDS
from bulls.models import (
    Alert,
    ClassificationResult,
    ClassificationThresholds,
    Role,
    SocialStatus,
    StudentAnalysis,
)


def build_student_analysis(
    result: ClassificationResult,
    thresholds: ClassificationThresholds = DEFAULT_THRESHOLDS
) -> StudentAnalysis:
    """Observation text and actions tailored to the student's role and status."""
    first_name = result.student_name.split()[0] if result.student_name.strip() else "The student"

    if result.role == Role.VICTIM:
        observations, actions = _victim_profile(first_name, result.social_status)
    elif result.role == Role.BULLY:
        observations, actions = _bully_profile(first_name, result.social_status)
    elif result.role == Role.BULLY_VICTIM:
        observations, actions = _bully_victim_profile(first_name)
    else:
        observations, actions = _observer_profile(first_name, result.social_status)

    return StudentAnalysis(
        result=result,
        observations=observations,
        recommended_actions=actions,
        alerts=detect_alerts(result, thresholds),
    )


def _victim_profile(name: str, status: SocialStatus) -> Tuple[str, List[str]]:
    observations = f"{name} shows signs of victimization. "
    if status == SocialStatus.REJECTED:
        observations += "Classmates show a pattern of rejection towards them. "
    elif status == SocialStatus.ISOLATED:
        observations += "They are socially isolated within the group. "
    return observations.strip(), [
        "Provide individual psychological support",
        "Strengthen their support network within the group",
        "Develop assertiveness and self-esteem skills",
    ]


def _bully_profile(name: str, status: SocialStatus) -> Tuple[str, List[str]]:
    observations = f"{name} shows aggressive behaviour towards some classmates. "
    if status == SocialStatus.POPULAR:
        observations += "Their social influence could be redirected positively. "
    return observations.strip(), [
        "Individual intervention focused on empathy",
        "Set clear consequences for aggressive behaviour",
        "Involve the family in the intervention",
    ]


def _bully_victim_profile(name: str) -> Tuple[str, List[str]]:
    observations = (
        f"{name} has a complex profile, being both victim and aggressor. "
        "Needs special attention due to greater vulnerability."
    )
    return observations, [
        "Specialized psychological support",
        "Develop emotional regulation skills",
        "Close follow-up of their progress",
    ]


def _observer_profile(name: str, status: SocialStatus) -> Tuple[str, List[str]]:
    observations = f"{name} shows no significant bullying indicators. "
    if status == SocialStatus.POPULAR:
        observations += "Could be a positive leader in group interventions. "
        return observations.strip(), [
            "Strengthen their role as a positive leader",
            "Involve them in bullying prevention initiatives",
        ]
    return observations.strip(), [
        "Raise awareness about not being a passive bystander",
        "Develop skills to intervene safely",
    ]


def detect_alerts(
    result: ClassificationResult,
    thresholds: ClassificationThresholds = DEFAULT_THRESHOLDS
) -> List[Alert]:
    """
    Red flags for a classified student.

    Isolation is measured as 100 minus the popularity index, rejection by
    the rejection index; both are percentages of possible nominators.
    """
    alerts = []
    name = result.student_name

    isolation_index = 100.0 - result.popularity_index
    few_choices = result.positive_connections <= thresholds.isolated_max_positive
    if few_choices and isolation_index > thresholds.isolation_alert_index:
        alerts.append(Alert(
            type='extreme-isolation',
            severity='critical' if isolation_index > thresholds.isolation_critical_index else 'high',
            description=f"{name} shows signs of extreme social isolation",
            recommendations=[
                "Run group integration activities",
                "Assign a support buddy",
                "Monitor social interactions",
                "Consider psychological intervention",
            ],
        ))

    if result.rejection_index > thresholds.rejection_alert_index:
        alerts.append(Alert(
            type='mass-rejection',
            severity='critical' if result.rejection_index > thresholds.rejection_critical_index else 'high',
            description=f"{name} experiences high levels of rejection from classmates",
            recommendations=[
                "Investigate the causes of rejection",
                "Work on social skills",
                "Mediate interpersonal conflicts",
                "Implement a coexistence programme",
            ],
        ))

    if result.role in (Role.BULLY, Role.BULLY_VICTIM):
        alerts.append(Alert(
            type='aggressor-identified',
            severity='high',
            description=f"{name} has been identified as an aggressor by multiple classmates",
            recommendations=[
                "Immediate intervention with the student",
                "Aggression management programme",
                "Behavioural follow-up",
                "Involve the family",
            ],
        ))

    if result.role in (Role.VICTIM, Role.BULLY_VICTIM):
        alerts.append(Alert(
            type='vulnerable-victim',
            severity='critical' if result.role == Role.BULLY_VICTIM else 'high',
            description=f"{name} has been identified as a victim by multiple classmates",
            recommendations=[
                "Immediate protection and support",
                "Individual follow-up with the counsellor",
                "Inform the family",
            ],
        ))

    return alerts
