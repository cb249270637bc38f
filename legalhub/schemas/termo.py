"""
Schemas Pydantic para termos pesquisados (nomes e escritórios no parceiro)
"""
from typing import Annotated, List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field


class _TermActionBase(BaseModel):
    partner_service_id: Optional[UUID] = Field(None, description="Serviço do parceiro; padrão: primeiro ativo")


class RegisterName(_TermActionBase):
    action: Literal["register"]
    nome: str = Field(..., min_length=3, max_length=255)
    instancia: int = Field(1, ge=1, le=4)
    abrangencias: List[str] = Field(default_factory=list)
    term_type: Literal["distributions", "publications", "name"] = "distributions"
    client_system_id: Optional[UUID] = None


class EditNameScope(_TermActionBase):
    action: Literal["edit_scope"]
    cod_nome: int
    instancia: int = Field(1, ge=1, le=4)
    abrangencias: List[str] = Field(default_factory=list)


class ActivateName(_TermActionBase):
    action: Literal["activate"]
    cod_nome: int


class DeactivateName(_TermActionBase):
    action: Literal["deactivate"]
    cod_nome: int


class DeleteName(_TermActionBase):
    action: Literal["delete"]
    cod_nome: int
    client_system_id: Optional[UUID] = Field(None, description="Remove só o vínculo deste cliente")


class ListNames(_TermActionBase):
    action: Literal["list_names"]


class RegisterOffice(_TermActionBase):
    action: Literal["register_office"]
    nome_escritorio: str = Field(..., min_length=2, max_length=255)
    cod_abrangencia: int = 1


class ActivateOffice(_TermActionBase):
    action: Literal["activate_office"]
    cod_escritorio: int


class DeactivateOffice(_TermActionBase):
    action: Literal["deactivate_office"]
    cod_escritorio: int


class ListScopes(_TermActionBase):
    action: Literal["list_scopes"]


# Termos de publicação: serviço SOAP, credenciais no envelope

class RegisterPublicationTerm(_TermActionBase):
    action: Literal["register_publication_term"]
    term: str = Field(..., min_length=3, max_length=255)
    term_type: Literal["name", "office"] = "name"
    client_system_id: Optional[UUID] = None


class UpdatePublicationTerm(_TermActionBase):
    action: Literal["update_publication_term"]
    term_id: UUID
    term: str = Field(..., min_length=3, max_length=255)


class DeletePublicationTerm(_TermActionBase):
    action: Literal["delete_publication_term"]
    term_id: UUID
    client_system_id: Optional[UUID] = Field(None, description="Remove só o vínculo deste cliente")


class ListPublicationTerms(_TermActionBase):
    action: Literal["list_publication_terms"]
    term_type: Literal["name", "office"] = "name"


TermAction = Annotated[
    Union[
        RegisterName,
        EditNameScope,
        ActivateName,
        DeactivateName,
        DeleteName,
        ListNames,
        RegisterOffice,
        ActivateOffice,
        DeactivateOffice,
        ListScopes,
        RegisterPublicationTerm,
        UpdatePublicationTerm,
        DeletePublicationTerm,
        ListPublicationTerms,
    ],
    Field(discriminator="action"),
]
