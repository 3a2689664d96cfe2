from pydantic import BaseModel


class ApiErrorResponse(BaseModel):
    code: str
    message: str
    details: dict | list | str | None = None
    trace_id: str | None = None


def error_responses(*status_codes: int) -> dict[int, dict]:
    return {status_code: {"model": ApiErrorResponse} for status_code in status_codes}
