"""Testes do gerenciamento de cadastro de processos"""
import orjson
import pytest
from sqlalchemy import select

from legalhub.errors import InvalidProcessNumberError
from legalhub.models import ClientProcess
from legalhub.schemas.processo import DeleteProcess, RegisterProcess, UpdateProcessNumber
from legalhub.services.lifecycle import ProcessStatus
from legalhub.services.processos import ProcessManager

NUMERO = "1234567-89.2024.8.26.0100"


@pytest.fixture
def manager(db, connector) -> ProcessManager:
    return ProcessManager(db, connector)


class TestCadastro:

    async def test_numero_invalido_nao_chama_o_parceiro(self, manager, fabrica, parceiro) -> None:
        await fabrica.servico("processes")

        with pytest.raises(InvalidProcessNumberError):
            await manager.executar(RegisterProcess(action="register", process_number="12345678920248260100"))

        assert parceiro.requisicoes == []

    async def test_cadastro_aceito(self, manager, db, fabrica, parceiro) -> None:
        await fabrica.servico("processes", cod_escritorio=55)
        cliente = await fabrica.cliente()
        parceiro.responder("POST", "/CadastraNovoProcesso", json={"codProcesso": 777})

        resultado = await manager.executar(RegisterProcess(
            action="register", process_number=NUMERO, uf="SP", client_system_id=cliente.id,
        ))

        assert resultado["registered_in_partner"] is True
        process = resultado["process"]
        assert process.status_code == ProcessStatus.VALIDATING
        assert process.cod_processo == 777
        assert process.solucionare_status == "registered"
        corpo = orjson.loads(parceiro.chamadas("/CadastraNovoProcesso")[0].content)
        assert corpo == {"numProcesso": NUMERO, "codEscritorio": 55, "uf": "SP", "instancia": "1"}
        vinculos = (await db.execute(select(ClientProcess))).scalars().all()
        assert [v.client_system_id for v in vinculos] == [cliente.id]

    async def test_rejeicao_do_parceiro_leva_a_erro(self, manager, fabrica, parceiro) -> None:
        await fabrica.servico("processes")
        parceiro.responder("POST", "/CadastraNovoProcesso", status=400, json={"mensagem": "Instância inválida para o tribunal"})

        resultado = await manager.executar(RegisterProcess(action="register", process_number=NUMERO, instancia="9"))

        assert resultado["registered_in_partner"] is False
        process = resultado["process"]
        assert process.status_code == ProcessStatus.ERROR
        assert process.error_category == "invalid_instance"
        assert process.status_description == "Instância inválida para o tribunal"

    async def test_processo_ja_monitorado_so_vincula(self, manager, fabrica, parceiro) -> None:
        await fabrica.processo(NUMERO)
        cliente = await fabrica.cliente()

        resultado = await manager.executar(RegisterProcess(action="register", process_number=NUMERO, client_system_id=cliente.id))

        assert resultado["registered_in_partner"] is False
        assert resultado["linked"] is True
        assert parceiro.requisicoes == []


class TestExclusao:

    async def test_exclusao_arquiva(self, manager, fabrica, parceiro) -> None:
        service = await fabrica.servico("processes")
        process = await fabrica.processo(NUMERO, cod_processo=777, partner_service_id=service.id, status_code=4)
        parceiro.responder("DELETE", "/ExcluirProcesso", json=True)

        resultado = await manager.executar(DeleteProcess(action="delete", process_number=NUMERO))

        assert resultado == {"removed_from_partner": True, "remaining_clients": 0}
        assert process.status_code == ProcessStatus.ARCHIVED
        assert process.status_description == "Excluído"
        assert orjson.loads(parceiro.chamadas("/ExcluirProcesso")[0].content) == {"codProcesso": 777}

    async def test_outro_cliente_mantem_o_processo(self, manager, fabrica, parceiro) -> None:
        service = await fabrica.servico("processes")
        cliente_a = await fabrica.cliente("Cliente A")
        cliente_b = await fabrica.cliente("Cliente B")
        process = await fabrica.processo(NUMERO, cliente_a, cod_processo=777, partner_service_id=service.id)
        fabrica.db.add(ClientProcess(client_system_id=cliente_b.id, process_id=process.id))
        await fabrica.db.commit()

        resultado = await manager.executar(DeleteProcess(action="delete", process_number=NUMERO, client_system_id=cliente_a.id))

        assert resultado == {"removed_from_partner": False, "remaining_clients": 1}
        assert parceiro.chamadas("/ExcluirProcesso") == []
        assert process.status_code == ProcessStatus.PENDING


class TestAlteracaoDeNumero:

    async def test_volta_para_validacao(self, manager, fabrica) -> None:
        process = await fabrica.processo(NUMERO, status_code=4)

        resultado = await manager.executar(UpdateProcessNumber(
            action="update_number", process_id=process.id, new_number="7654321-00.2023.8.26.0001",
        ))

        assert resultado["changed"] is True
        assert process.process_number == "7654321-00.2023.8.26.0001"
        assert process.status_code == ProcessStatus.VALIDATING


class TestRotaDeAcoes:

    async def test_numero_invalido_responde_400(self, api, parceiro) -> None:
        response = await api.post("/processes/actions", json={"action": "register", "process_number": "123"})

        assert response.status_code == 400
        assert response.json()["detail"]["type"] == "validation_error"
        assert parceiro.requisicoes == []

    async def test_acao_desconhecida_e_recusada_na_borda(self, api) -> None:
        response = await api.post("/processes/actions", json={"action": "explode", "process_number": NUMERO})
        assert response.status_code == 422

    async def test_registro_pela_rota(self, api, fabrica, parceiro) -> None:
        await fabrica.servico("processes")
        parceiro.responder("POST", "/CadastraNovoProcesso", json={"codProcesso": 778})

        response = await api.post("/processes/actions", json={"action": "register", "process_number": NUMERO})

        assert response.status_code == 200
        corpo = response.json()
        assert corpo["status"] == "success"
        assert corpo["data"]["process"]["cod_processo"] == 778
        assert corpo["data"]["process"]["status_code"] == 2


class TestCacheDeDetalhes:

    @pytest.fixture
    def cache_populado(self, cache):
        cache.dados.update({
            "detalhe:processes:cliente-a:123:movements": {"process_number": NUMERO},
            "detalhe:processes:cliente-b:123": {"process_number": NUMERO},
            "detalhe:distributions:cliente-a:9": {"cod_distribuicao": 9},
        })
        return cache

    async def test_alteracao_de_numero_limpa_os_detalhes(self, db, connector, cache_populado, fabrica) -> None:
        process = await fabrica.processo(NUMERO, status_code=4)
        manager = ProcessManager(db, connector, cache_populado)

        await manager.executar(UpdateProcessNumber(
            action="update_number", process_id=process.id, new_number="7654321-00.2023.8.26.0001",
        ))

        assert list(cache_populado.dados) == ["detalhe:distributions:cliente-a:9"]

    async def test_mesmo_numero_mantem_o_cache(self, db, connector, cache_populado, fabrica) -> None:
        process = await fabrica.processo(NUMERO, status_code=4)
        manager = ProcessManager(db, connector, cache_populado)

        await manager.executar(UpdateProcessNumber(action="update_number", process_id=process.id, new_number=NUMERO))

        assert len(cache_populado.dados) == 3

    async def test_exclusao_limpa_os_detalhes(self, db, connector, cache_populado, fabrica, parceiro) -> None:
        service = await fabrica.servico("processes")
        await fabrica.processo(NUMERO, cod_processo=777, partner_service_id=service.id, status_code=4)
        parceiro.responder("DELETE", "/ExcluirProcesso", json=True)
        manager = ProcessManager(db, connector, cache_populado)

        await manager.executar(DeleteProcess(action="delete", process_number=NUMERO))

        assert list(cache_populado.dados) == ["detalhe:distributions:cliente-a:9"]
