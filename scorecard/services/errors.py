class ScorecardError(Exception):
    """Base class for scoring errors surfaced to callers."""


class SubmissionNotFoundError(ScorecardError):
    def __init__(self, submission_id: str):
        super().__init__(f"Submission {submission_id} not found")
        self.submission_id = submission_id


class KpiBindingMissingError(ScorecardError):
    def __init__(self, form_template_id: str):
        super().__init__(f"No active KPI version bound to form {form_template_id}")
        self.form_template_id = form_template_id
