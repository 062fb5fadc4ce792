"""RFC 7807 Problem Details for API error responses."""

from typing import Any, Final

from pydantic import BaseModel, Field

PROBLEM_TYPE_BASE: Final = "https://storefront.local/problems/"


class ErrorCodes:
    """Machine-readable codes used in field errors."""

    FIELD_REQUIRED: Final = "FIELD_REQUIRED"
    FIELD_INVALID_VALUE: Final = "FIELD_INVALID_VALUE"


class FieldError(BaseModel):
    field: str
    code: str
    message: str


class ProblemDetail(BaseModel):
    """A problem details document (RFC 7807)."""

    type: str = Field(description="URI identifying the problem type")
    title: str = Field(description="Short, human-readable summary")
    status: int = Field(description="HTTP status code")
    detail: str | None = Field(None, description="Explanation of this occurrence")
    instance: str | None = Field(None, description="Request path of the occurrence")
    code: str | None = Field(None, description="Application error code")
    errors: list[FieldError] | None = Field(None, description="Field errors")


_TITLES: Final = {
    400: "Bad Request",
    404: "Not Found",
    409: "Conflict",
    422: "Unprocessable Entity",
    500: "Internal Server Error",
}


class ProblemDetailFactory:
    """Builds the problem documents the API returns."""

    @staticmethod
    def from_status(
        status: int,
        detail: str,
        instance: str | None = None,
        code: str | None = None,
    ) -> ProblemDetail:
        slug = (code or _TITLES.get(status, "error")).lower().replace(" ", "-")
        return ProblemDetail(
            type=f"{PROBLEM_TYPE_BASE}{slug.replace('_', '-')}",
            title=_TITLES.get(status, "Error"),
            status=status,
            detail=detail,
            instance=instance,
            code=code,
        )

    @staticmethod
    def validation_failed(
        detail: str,
        instance: str | None = None,
        field_errors: list[dict[str, Any]] | None = None,
    ) -> ProblemDetail:
        problem = ProblemDetailFactory.from_status(
            400, detail, instance, code="VALIDATION_FAILED"
        )
        if field_errors:
            problem.errors = [FieldError(**error) for error in field_errors]
        return problem

    @staticmethod
    def internal_server_error(
        detail: str = "An unexpected error occurred. Please try again.",
        instance: str | None = None,
    ) -> ProblemDetail:
        return ProblemDetailFactory.from_status(
            500, detail, instance, code="INTERNAL_ERROR"
        )
