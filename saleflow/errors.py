"""Error taxonomy for the publish and finalize flows.

Every caller-facing failure carries a stable machine-readable ``code``
and the HTTP status the blueprints answer with. Blueprints catch
``SaleflowError`` and render ``{ok: false, code, error}``.
"""


class SaleflowError(Exception):
    code = "INTERNAL_ERROR"
    status = 500

    def __init__(self, message=None, code=None, details=None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        if code:
            self.code = code
        self.details = details or {}

    def to_dict(self):
        body = {"ok": False, "code": self.code, "error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(SaleflowError):
    """Bad or missing draft fields. No state change."""

    code = "VALIDATION_ERROR"
    status = 400


class DraftNotFoundError(SaleflowError):
    code = "DRAFT_NOT_FOUND"
    status = 404


class AuthorizationError(SaleflowError):
    """Draft exists but belongs to someone else. No state change."""

    code = "FORBIDDEN"
    status = 403


class PromotionsDisabledError(SaleflowError):
    code = "PROMOTIONS_DISABLED"
    status = 403


class ProcessorError(SaleflowError):
    """Checkout session could not be created. Promotion canceled, draft kept."""

    code = "PROCESSOR_ERROR"
    status = 502


class PublishFailedError(SaleflowError):
    """Sale/items insert failed on the immediate path. Draft untouched."""

    code = "PUBLISH_FAILED"
    status = 500


class FinalizationError(SaleflowError):
    """Sale materialization failed inside the webhook handler.

    Never surfaces as a non-2xx: the ledger row is marked errored and
    left for operator replay.
    """

    code = "FINALIZATION_ERROR"
    status = 200
