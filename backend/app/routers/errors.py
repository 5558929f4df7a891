"""Conversion des erreurs métier du moteur en réponses HTTP."""

from fastapi import HTTPException

from app.exceptions import AttendanceError, WaitBeforeAutoExit


def to_http_exception(error: AttendanceError) -> HTTPException:
    detail = {"code": error.code, "message": error.message}
    if isinstance(error, WaitBeforeAutoExit):
        detail["minutes_left"] = error.minutes_left
    return HTTPException(status_code=error.status_code, detail=detail)
