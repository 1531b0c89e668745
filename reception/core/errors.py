"""Erreurs métier levées par les dépôts et les services de lots."""
from __future__ import annotations


class ReceptionError(Exception):
    """Erreur typée portant un code stable et un message lisible."""

    code = "error"
    status_code = 500

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def __str__(self) -> str:
        return self.message


class ValidationError(ReceptionError):
    code = "validation"
    status_code = 400


class NotFoundError(ReceptionError):
    code = "not_found"
    status_code = 404


class ConflictError(ReceptionError):
    code = "conflict"
    status_code = 409


def error_for_status(status_code: int, message: str) -> ReceptionError:
    """Reconstruit l'erreur métier correspondant à un statut HTTP."""

    for error_type in (ValidationError, NotFoundError, ConflictError):
        if error_type.status_code == status_code:
            return error_type(message)
    if status_code == 422:
        return ValidationError(message)
    error = ReceptionError(message)
    error.status_code = status_code
    return error
