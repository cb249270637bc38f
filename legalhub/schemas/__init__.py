"""
Schemas Pydantic para validação e serialização
"""
from .processo import (
    ProcessResponse,
    ProcessAction,
    RegisterProcess,
    DeleteProcess,
    CheckProcessStatus,
    ListPartnerProcesses,
    SyncProcessStatuses,
    UpdateProcessNumber,
)
from .termo import TermAction
from .sync import SyncDomain, SyncRequest, RevertConfirmationsRequest

__all__ = [
    "ProcessResponse",
    "ProcessAction",
    "RegisterProcess",
    "DeleteProcess",
    "CheckProcessStatus",
    "ListPartnerProcesses",
    "SyncProcessStatuses",
    "UpdateProcessNumber",
    "TermAction",
    "SyncDomain",
    "SyncRequest",
    "RevertConfirmationsRequest",
]
