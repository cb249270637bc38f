"""
Gerenciamento de termos pesquisados (nomes e escritórios) junto ao parceiro

Nomes e escritórios de distribuição usam o bearer obtido em ``AutenticaAPI``;
termos de publicação vão pelo serviço SOAP, com as credenciais no envelope.
O cadastro local (``search_terms``) acompanha o resultado de cada ação.
"""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import NoActiveServicesError, UnknownActionError
from ..models import ClientSearchTerm, PartnerService, SearchTerm
from ..partner import PartnerClient, PartnerConnector
from ..schemas.termo import (
    ActivateName,
    ActivateOffice,
    DeactivateName,
    DeactivateOffice,
    DeleteName,
    DeletePublicationTerm,
    EditNameScope,
    ListNames,
    ListPublicationTerms,
    ListScopes,
    RegisterName,
    RegisterOffice,
    RegisterPublicationTerm,
    UpdatePublicationTerm,
)

logger = logging.getLogger(__name__)

TIPOS_SERVICO_TERMOS = ("distributions", "terms")
TIPOS_SERVICO_PUBLICACAO = ("publications",)

# term_type → (método SOAP de cadastro, parâmetro do termo)
METODOS_SOAP = {
    "name": ("setNomePesquisa", "nomePesquisa"),
    "office": ("setEscritorio", "escritorio"),
}


def _lista(dados) -> list:
    if isinstance(dados, dict):
        dados = dados.get("data", dados.get("itens", []))
    return dados if isinstance(dados, list) else []


class TermManager:
    def __init__(self, db: AsyncSession, connector: PartnerConnector):
        self.db = db
        self.connector = connector

    async def executar(self, acao) -> dict:
        handlers = {
            RegisterName: self.cadastrar_nome,
            EditNameScope: self.editar_abrangencia,
            ActivateName: self.ativar_nome,
            DeactivateName: self.desativar_nome,
            DeleteName: self.excluir_nome,
            ListNames: self.listar_nomes,
            RegisterOffice: self.cadastrar_escritorio,
            ActivateOffice: self.ativar_escritorio,
            DeactivateOffice: self.desativar_escritorio,
            ListScopes: self.listar_abrangencias,
        }
        handlers_soap = {
            RegisterPublicationTerm: self.cadastrar_termo_publicacao,
            UpdatePublicationTerm: self.alterar_termo_publicacao,
            DeletePublicationTerm: self.excluir_termo_publicacao,
            ListPublicationTerms: self.listar_termos_publicacao,
        }

        if type(acao) in handlers_soap:
            service = await self._servico(acao.partner_service_id, TIPOS_SERVICO_PUBLICACAO)
            return await handlers_soap[type(acao)](self.connector.cliente_soap(service), service, acao)

        handler = handlers.get(type(acao))
        if handler is None:
            raise UnknownActionError(getattr(acao, "action", type(acao).__name__))

        service = await self._servico(acao.partner_service_id)
        client = await self.connector.conectar(service)
        return await handler(client, service, acao)

    async def _servico(self, partner_service_id: Optional[UUID], tipos: tuple = TIPOS_SERVICO_TERMOS) -> PartnerService:
        query = select(PartnerService).where(
            PartnerService.service_type.in_(tipos),
            PartnerService.is_active.is_(True),
        )
        if partner_service_id is not None:
            query = query.where(PartnerService.id == partner_service_id)
        result = await self.db.execute(query.order_by(PartnerService.created_at).limit(1))
        service = result.scalar_one_or_none()
        if service is None:
            raise NoActiveServicesError(f"Nenhum serviço ativo do tipo {', '.join(tipos)}")
        return service

    async def _termo_por_codigo(self, service: PartnerService, cod_nome: int) -> Optional[SearchTerm]:
        result = await self.db.execute(
            select(SearchTerm).where(
                SearchTerm.partner_service_id == service.id,
                SearchTerm.cod_nome == cod_nome,
            )
        )
        return result.scalar_one_or_none()

    async def _vincular(self, term_id: UUID, client_system_id: Optional[UUID]) -> bool:
        if client_system_id is None:
            return False
        existente = await self.db.execute(
            select(ClientSearchTerm).where(
                ClientSearchTerm.search_term_id == term_id,
                ClientSearchTerm.client_system_id == client_system_id,
            )
        )
        if existente.scalar_one_or_none():
            return False
        self.db.add(ClientSearchTerm(search_term_id=term_id, client_system_id=client_system_id))
        await self.db.flush()
        return True

    # --------------- Nomes ---------------

    async def cadastrar_nome(self, client: PartnerClient, service: PartnerService, acao: RegisterName) -> dict:
        result = await self.db.execute(
            select(SearchTerm).where(
                SearchTerm.partner_service_id == service.id,
                SearchTerm.term == acao.nome,
                SearchTerm.term_type == acao.term_type,
            )
        )
        termo = result.scalar_one_or_none()
        cadastrado = False

        if termo is None:
            resposta = await client.post("/CadastrarNome", json={
                "codEscritorio": service.cod_escritorio,
                "nome": acao.nome,
                "codTipoConsulta": 1,
                "listInstancias": [acao.instancia],
                "listAbrangencias": acao.abrangencias,
            })
            cod_nome = resposta.get("codNome") if isinstance(resposta, dict) else None
            termo = SearchTerm(
                term=acao.nome,
                term_type=acao.term_type,
                partner_service_id=service.id,
                cod_nome=int(cod_nome) if cod_nome else None,
                cod_escritorio=service.cod_escritorio,
                is_active=True,
                solucionare_status="synced",
            )
            self.db.add(termo)
            await self.db.flush()
            cadastrado = True
            logger.info(f"Nome cadastrado no parceiro: {acao.nome} (codNome={termo.cod_nome})")

        vinculado = await self._vincular(termo.id, acao.client_system_id)
        return {"registered_in_partner": cadastrado, "linked": vinculado, "term": termo.to_dict()}

    async def editar_abrangencia(self, client: PartnerClient, service: PartnerService, acao: EditNameScope) -> dict:
        resposta = await client.put("/EditarInstanciaAbrangenciaNome", json={
            "codNome": acao.cod_nome,
            "instancia": acao.instancia,
            "abrangencia": acao.abrangencias,
        })
        return {"partner_response": resposta}

    async def _alterar_ativo(self, client: PartnerClient, service: PartnerService, cod_nome: int, ativo: bool) -> dict:
        endpoint = "/AtivarNome" if ativo else "/DesativarNome"
        resposta = await client.patch(endpoint, json={"codNome": cod_nome})
        await self.db.execute(
            update(SearchTerm)
            .where(SearchTerm.partner_service_id == service.id, SearchTerm.cod_nome == cod_nome)
            .values(is_active=ativo)
            .execution_options(synchronize_session=False)
        )
        return {"cod_nome": cod_nome, "is_active": ativo, "partner_response": resposta}

    async def ativar_nome(self, client: PartnerClient, service: PartnerService, acao: ActivateName) -> dict:
        return await self._alterar_ativo(client, service, acao.cod_nome, True)

    async def desativar_nome(self, client: PartnerClient, service: PartnerService, acao: DeactivateName) -> dict:
        return await self._alterar_ativo(client, service, acao.cod_nome, False)

    async def excluir_nome(self, client: PartnerClient, service: PartnerService, acao: DeleteName) -> dict:
        """Com cliente informado, só exclui no parceiro quando nenhum outro cliente usa o termo"""
        termo = await self._termo_por_codigo(service, acao.cod_nome)

        if termo is not None and acao.client_system_id is not None:
            await self.db.execute(
                delete(ClientSearchTerm).where(
                    ClientSearchTerm.search_term_id == termo.id,
                    ClientSearchTerm.client_system_id == acao.client_system_id,
                )
            )
            restantes = await self.db.scalar(
                select(func.count()).select_from(ClientSearchTerm).where(ClientSearchTerm.search_term_id == termo.id)
            )
            if restantes:
                return {"removed_from_partner": False, "remaining_clients": restantes}

        await client.delete("/ExcluirNome", json={"codNome": acao.cod_nome})
        if termo is not None:
            termo.is_active = False
            termo.solucionare_status = "deleted"
            await self.db.flush()
        logger.info(f"Nome {acao.cod_nome} excluído no parceiro")
        return {"removed_from_partner": True, "remaining_clients": 0}

    async def listar_nomes(self, client: PartnerClient, service: PartnerService, acao: ListNames) -> dict:
        dados = _lista(await client.get("/BuscaNomesCadastrados", params={"codEscritorio": service.cod_escritorio}))
        return {"names": dados, "count": len(dados)}

    # --------------- Escritórios ---------------

    async def cadastrar_escritorio(self, client: PartnerClient, service: PartnerService, acao: RegisterOffice) -> dict:
        resposta = await client.post("/CadastrarEscritorio", json={
            "nomeEscritorio": acao.nome_escritorio,
            "codAbrangencia": acao.cod_abrangencia,
        })
        cod_escritorio = resposta.get("codEscritorio") if isinstance(resposta, dict) else None
        termo = SearchTerm(
            term=acao.nome_escritorio,
            term_type="office",
            partner_service_id=service.id,
            cod_escritorio=int(cod_escritorio) if cod_escritorio else None,
            is_active=True,
            solucionare_status="synced",
        )
        self.db.add(termo)
        await self.db.flush()
        return {"term": termo.to_dict(), "partner_response": resposta}

    async def _alterar_escritorio(self, client: PartnerClient, service: PartnerService, cod_escritorio: int, ativo: bool) -> dict:
        endpoint = "/AtivarEscritorio" if ativo else "/DesativarEscritorio"
        resposta = await client.put(endpoint, params={"codEscritorio": cod_escritorio})
        await self.db.execute(
            update(SearchTerm)
            .where(
                SearchTerm.partner_service_id == service.id,
                SearchTerm.term_type == "office",
                SearchTerm.cod_escritorio == cod_escritorio,
            )
            .values(is_active=ativo)
            .execution_options(synchronize_session=False)
        )
        return {"cod_escritorio": cod_escritorio, "is_active": ativo, "partner_response": resposta}

    async def ativar_escritorio(self, client: PartnerClient, service: PartnerService, acao: ActivateOffice) -> dict:
        return await self._alterar_escritorio(client, service, acao.cod_escritorio, True)

    async def desativar_escritorio(self, client: PartnerClient, service: PartnerService, acao: DeactivateOffice) -> dict:
        return await self._alterar_escritorio(client, service, acao.cod_escritorio, False)

    async def listar_abrangencias(self, client: PartnerClient, service: PartnerService, acao: ListScopes) -> dict:
        dados = _lista(await client.get("/BuscaEscritoriosCadastrados", params={"codEscritorio": service.cod_escritorio}))
        return {"scopes": dados, "count": len(dados)}

    # --------------- Termos de publicação (SOAP) ---------------

    async def _termo(self, service: PartnerService, term_id: UUID) -> SearchTerm:
        termo = await self.db.get(SearchTerm, term_id)
        if termo is None or termo.partner_service_id != service.id:
            raise LookupError(f"Termo não encontrado: {term_id}")
        return termo

    async def _registrar_soap(self, client: PartnerClient, term_type: str, term: str) -> None:
        metodo, parametro = METODOS_SOAP[term_type]
        await client.soap("cadastrar")
        await client.soap(metodo, {parametro: term})

    async def _remover_soap(self, client: PartnerClient, term_type: str, term: str) -> None:
        _, parametro = METODOS_SOAP[term_type]
        await client.soap("remover", {parametro: term})

    async def cadastrar_termo_publicacao(self, client: PartnerClient, service: PartnerService, acao: RegisterPublicationTerm) -> dict:
        result = await self.db.execute(
            select(SearchTerm).where(
                SearchTerm.partner_service_id == service.id,
                SearchTerm.term == acao.term,
                SearchTerm.term_type == acao.term_type,
            )
        )
        termo = result.scalar_one_or_none()
        cadastrado = False

        if termo is None:
            await self._registrar_soap(client, acao.term_type, acao.term)
            termo = SearchTerm(
                term=acao.term,
                term_type=acao.term_type,
                partner_service_id=service.id,
                is_active=True,
                solucionare_status="synced",
            )
            self.db.add(termo)
            await self.db.flush()
            cadastrado = True
            logger.info(f"Termo de publicação cadastrado ({acao.term_type}): {acao.term}")

        vinculado = await self._vincular(termo.id, acao.client_system_id)
        return {"registered_in_partner": cadastrado, "linked": vinculado, "term": termo.to_dict()}

    async def alterar_termo_publicacao(self, client: PartnerClient, service: PartnerService, acao: UpdatePublicationTerm) -> dict:
        termo = await self._termo(service, acao.term_id)
        alterado = termo.term != acao.term
        if alterado:
            await self._remover_soap(client, termo.term_type, termo.term)
            await self._registrar_soap(client, termo.term_type, acao.term)
            termo.term = acao.term
            await self.db.flush()
        return {"changed": alterado, "term": termo.to_dict()}

    async def excluir_termo_publicacao(self, client: PartnerClient, service: PartnerService, acao: DeletePublicationTerm) -> dict:
        termo = await self._termo(service, acao.term_id)

        if acao.client_system_id is not None:
            await self.db.execute(
                delete(ClientSearchTerm).where(
                    ClientSearchTerm.search_term_id == termo.id,
                    ClientSearchTerm.client_system_id == acao.client_system_id,
                )
            )
            restantes = await self.db.scalar(
                select(func.count()).select_from(ClientSearchTerm).where(ClientSearchTerm.search_term_id == termo.id)
            )
            if restantes:
                return {"removed_from_partner": False, "remaining_clients": restantes}

        await self._remover_soap(client, termo.term_type, termo.term)
        termo.is_active = False
        termo.solucionare_status = "deleted"
        await self.db.flush()
        return {"removed_from_partner": True, "remaining_clients": 0}

    async def listar_termos_publicacao(self, client: PartnerClient, service: PartnerService, acao: ListPublicationTerms) -> dict:
        metodo = "buscarEscritorios" if acao.term_type == "office" else "buscarNomesPesquisa"
        remotos = await client.soap(metodo)
        result = await self.db.execute(
            select(SearchTerm).where(
                SearchTerm.partner_service_id == service.id,
                SearchTerm.term_type == acao.term_type,
                SearchTerm.is_active.is_(True),
            )
        )
        return {
            "local": [t.to_dict() for t in result.scalars().all()],
            "partner": remotos if isinstance(remotos, list) else [],
        }
