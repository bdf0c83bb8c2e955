from __future__ import annotations


class CVLensError(RuntimeError):
    code = "analysis_failed"
    status_code = 500

    def __init__(self, message: str, *, details: str | None = None):
        super().__init__(message)
        self.details = details


class UnsupportedDocumentError(CVLensError):
    code = "unsupported_format"
    status_code = 400


class DocumentExtractionError(CVLensError):
    code = "parse_failed"
    status_code = 422


class DocumentTooShortError(CVLensError):
    code = "file_too_short"
    status_code = 400


class CVNotFoundError(CVLensError):
    code = "cv_not_found"
    status_code = 404


class SectionNotFoundError(CVLensError):
    code = "section_not_found"
    status_code = 404


class ObservationNotFoundError(CVLensError):
    code = "observation_not_found"
    status_code = 404


class InvalidStatusTransitionError(CVLensError):
    code = "invalid_status_transition"
    status_code = 409


class EmptyInputError(CVLensError):
    code = "invalid_input"
    status_code = 400
