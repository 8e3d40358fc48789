from scorecard.models.agency import Agency, MemberRole, TeamMember
from scorecard.models.forms import FormStatus, FormTemplate, Submission
from scorecard.models.kpi import FormKpiBinding, Kpi, KpiVersion
from scorecard.models.scorecard import MetricsDaily, ScorecardRules, Target

__all__ = [
    "Agency",
    "FormKpiBinding",
    "FormStatus",
    "FormTemplate",
    "Kpi",
    "KpiVersion",
    "MemberRole",
    "MetricsDaily",
    "ScorecardRules",
    "Submission",
    "Target",
    "TeamMember",
]
