"""Côté poste de réception: client HTTP, éditeur de saisie et enchaînement."""

from .api_client import ReceptionApiClient, TransientError
from .intake import IntakeEditor, IntakeNotice, IntakeRow, ScanBuffer
from .workflow import LotWorkflow, UserMessage, WorkflowOutcome, build_workflow

__all__ = [
    "IntakeEditor",
    "IntakeNotice",
    "IntakeRow",
    "LotWorkflow",
    "ReceptionApiClient",
    "ScanBuffer",
    "TransientError",
    "UserMessage",
    "WorkflowOutcome",
    "build_workflow",
]
