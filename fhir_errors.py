# fhir_errors.py
"""
Error kinds raised by the resource providers and the FastAPI handlers that
turn them into OperationOutcome responses.
"""
import logging
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

log = logging.getLogger("fhir_errors")

FHIR_JSON = "application/fhir+json"


class ArgumentError(ValueError):
    """Malformed, blank or version-qualified ids, mismatched paging arguments."""


class NumberFormatError(ValueError):
    """A header or parameter that cannot be parsed as an integer."""


class BaseServerResponseError(Exception):
    status_code = 500
    issue_code = "exception"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequestError(BaseServerResponseError):
    status_code = 400
    issue_code = "processing"


class ResourceNotFoundError(BaseServerResponseError):
    status_code = 404
    issue_code = "not-found"

    def __init__(self, resource_id: Any):
        super().__init__(f"Resource {resource_id} is not known")
        self.resource_id = resource_id


def operation_outcome(code: str, diagnostics: str) -> Dict[str, Any]:
    return {
        "resourceType": "OperationOutcome",
        "issue": [{"severity": "error", "code": code, "diagnostics": diagnostics}],
    }


async def _server_response_error_handler(request: Request, exc: BaseServerResponseError):
    log.warning("%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(operation_outcome(exc.issue_code, exc.message), status_code=exc.status_code, media_type=FHIR_JSON)


async def _argument_error_handler(request: Request, exc: ArgumentError):
    message = str(exc) or "Invalid argument"
    log.warning("%s %s -> 400: %s", request.method, request.url.path, message)
    return JSONResponse(operation_outcome("invalid", message), status_code=400, media_type=FHIR_JSON)


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BaseServerResponseError, _server_response_error_handler)
    app.add_exception_handler(ArgumentError, _argument_error_handler)
