"""
Schemas Pydantic para processos e ações de gerenciamento de cadastro
"""
from datetime import datetime
from typing import Annotated, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ProcessResponse(BaseModel):
    id: UUID
    process_number: str
    cod_processo: Optional[int] = None
    tribunal: Optional[str] = None
    uf: Optional[str] = None
    instance: Optional[str] = None
    status_code: int
    status_description: Optional[str] = None
    error_category: Optional[str] = None
    partner_status_code: Optional[int] = None
    solucionare_status: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RegisterProcess(BaseModel):
    action: Literal["register"]
    process_number: str = Field(..., description="Número CNJ", examples=["1234567-89.2024.8.26.0100"])
    uf: Optional[str] = Field(None, max_length=2)
    instancia: str = Field("1", description="Instância do processo")
    tribunal: Optional[str] = None
    client_system_id: Optional[UUID] = None
    partner_service_id: Optional[UUID] = None


class DeleteProcess(BaseModel):
    action: Literal["delete"]
    process_number: str
    client_system_id: Optional[UUID] = Field(None, description="Remove só o vínculo deste cliente")
    partner_service_id: Optional[UUID] = None


class CheckProcessStatus(BaseModel):
    action: Literal["status"]
    process_number: str
    partner_service_id: Optional[UUID] = None


class ListPartnerProcesses(BaseModel):
    action: Literal["list"]
    partner_service_id: Optional[UUID] = None


class SyncProcessStatuses(BaseModel):
    action: Literal["sync"]
    partner_service_id: Optional[UUID] = None


class UpdateProcessNumber(BaseModel):
    action: Literal["update_number"]
    process_id: UUID
    new_number: str = Field(..., examples=["1234567-89.2024.8.26.0100"])


ProcessAction = Annotated[
    Union[
        RegisterProcess,
        DeleteProcess,
        CheckProcessStatus,
        ListPartnerProcesses,
        SyncProcessStatuses,
        UpdateProcessNumber,
    ],
    Field(discriminator="action"),
]
