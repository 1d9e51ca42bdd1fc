class RiskMapperError(Exception):
    """Base exception for Risk Mapper application."""

    pass


class ScoringConfigError(RiskMapperError):
    """Raised when a question's scoring configuration is malformed or invalid."""

    def __init__(self, message: str, question_id: str | None = None):
        self.question_id = question_id
        if question_id:
            message = f"question {question_id}: {message}"
        super().__init__(message)


class PaymentIntentAlreadyAttachedError(RiskMapperError):
    """Session already has a payment intent. Carries the existing session row."""

    def __init__(self, session):
        self.session = session
        super().__init__(f"Payment intent already attached to session {session.id}")


class ReportAlreadyExistsError(RiskMapperError):
    """A report already exists for the session. Carries the existing report row."""

    def __init__(self, report):
        self.report = report
        super().__init__(f"Report already exists for session {report.session_id}")


class SessionNotFoundError(RiskMapperError):
    """Raised when no session matches the lookup key."""

    pass


class ReportNotFoundError(RiskMapperError):
    """Raised when no report matches the lookup key."""

    pass


class NoAnswersError(RiskMapperError):
    """Raised when a report's session has no answers to score."""

    def __init__(self, session_id):
        self.session_id = session_id
        super().__init__(f"No answers found for session {session_id}")


class HedgingError(RiskMapperError):
    """Raised when AI hedge generation fails."""

    pass


class NotificationError(RiskMapperError):
    """Raised when an email cannot be delivered."""

    pass


class QueueFullError(RiskMapperError):
    """Raised when the worker queue rejects a report id."""

    def __init__(self, report_id):
        self.report_id = report_id
        super().__init__(f"Worker queue full, report {report_id} not enqueued")
