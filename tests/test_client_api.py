"""Testes da API de dados para sistemas clientes"""
import pytest
from sqlalchemy import select

from legalhub.models import ApiRequest, Distribution, ProcessMovement
from legalhub.utils import agora_utc

AUTH_A = {"Authorization": "Bearer tok-cliente-a"}
AUTH_B = {"Authorization": "Bearer tok-cliente-b"}


@pytest.fixture
async def clientes(fabrica):
    """Clientes A e B, ambos com direito a processos e distribuições"""
    processos = await fabrica.servico("processes")
    distribuicoes = await fabrica.servico("distributions")
    cliente_a = await fabrica.cliente("Cliente A")
    cliente_b = await fabrica.cliente("Cliente B")
    for cliente, valor in ((cliente_a, "tok-cliente-a"), (cliente_b, "tok-cliente-b")):
        await fabrica.token(cliente, valor)
        await fabrica.direito(cliente, processos)
        await fabrica.direito(cliente, distribuicoes)
    return cliente_a, cliente_b, distribuicoes


class TestAutenticacao:

    async def test_sem_token(self, api, clientes) -> None:
        response = await api.get("/api/processes")

        assert response.status_code == 401
        corpo = response.json()
        assert corpo["status"] == "error"
        assert corpo["error"]["type"] == "authentication_error"
        assert corpo["error"]["details"] == {"reason": "token_missing"}

    async def test_cliente_sem_o_servico(self, api, fabrica) -> None:
        cliente = await fabrica.cliente("Cliente C")
        await fabrica.token(cliente, "tok-cliente-c")

        response = await api.get("/api/publications", headers={"Authorization": "Bearer tok-cliente-c"})

        assert response.status_code == 403
        assert response.json()["error"]["details"]["reason"] == "service_denied"

    async def test_aceita_x_api_key(self, api, clientes) -> None:
        response = await api.get("/api/processes", headers={"X-API-Key": "tok-cliente-a"})
        assert response.status_code == 200


class TestProcessos:

    async def test_lista_so_os_processos_do_cliente(self, api, fabrica, clientes, session_factory) -> None:
        cliente_a, cliente_b, _ = clientes
        await fabrica.processo("1234567-89.2024.8.26.0100", cliente_a)
        await fabrica.processo("7654321-00.2023.8.26.0001", cliente_b)

        response = await api.get("/api/processes", params={"limit": 1000}, headers=AUTH_A)

        assert response.status_code == 200
        corpo = response.json()
        assert [p["process_number"] for p in corpo["data"]] == ["1234567-89.2024.8.26.0100"]
        assert corpo["pagination"] == {"total": 1, "limit": 500, "offset": 0, "has_more": False}
        assert corpo["batch"]["pending_confirmation"] is True
        assert "X-RateLimit-Limit" in response.headers
        assert "X-RateLimit-Remaining" in response.headers

        async with session_factory() as db:
            requisicoes = (await db.execute(select(ApiRequest))).scalars().all()
        assert [(r.endpoint, r.status_code) for r in requisicoes] == [("/api/processes", 200)]

    async def test_lote_pendente_bloqueia_novos_dados(self, api, fabrica, clientes) -> None:
        cliente_a, _, _ = clientes
        await fabrica.processo("1234567-89.2024.8.26.0100", cliente_a)

        await api.get("/api/processes", headers=AUTH_A)
        segunda = (await api.get("/api/processes", headers=AUTH_A)).json()

        assert segunda["data"] == []
        assert segunda["batch"]["pending_confirmation"] is True
        assert "action=confirm" in segunda["batch"]["message"]

    async def test_confirmar_lote(self, api, fabrica, clientes) -> None:
        cliente_a, _, _ = clientes
        await fabrica.processo("1234567-89.2024.8.26.0100", cliente_a)
        await api.get("/api/processes", headers=AUTH_A)

        confirmacao = await api.post("/api/processes", params={"action": "confirm"}, headers=AUTH_A)
        assert confirmacao.status_code == 200
        assert confirmacao.json()["message"] == "Lote confirmado"

        repetida = await api.post("/api/processes", params={"action": "confirm"}, headers=AUTH_A)
        assert repetida.status_code == 400
        assert repetida.json()["detail"]["message"] == "Nenhum lote pendente"

        terceira = (await api.get("/api/processes", headers=AUTH_A)).json()
        assert len(terceira["data"]) == 1

    async def test_lote_de_um_cliente_nao_afeta_o_outro(self, api, fabrica, clientes) -> None:
        cliente_a, cliente_b, _ = clientes
        await fabrica.processo("1234567-89.2024.8.26.0100", cliente_a)
        await fabrica.processo("7654321-00.2023.8.26.0001", cliente_b)

        await api.get("/api/processes", headers=AUTH_A)
        resposta_b = (await api.get("/api/processes", headers=AUTH_B)).json()

        assert [p["process_number"] for p in resposta_b["data"]] == ["7654321-00.2023.8.26.0001"]

    async def test_detalhe_de_processo_de_outro_cliente(self, api, fabrica, clientes) -> None:
        _, cliente_b, _ = clientes
        alheio = await fabrica.processo("7654321-00.2023.8.26.0001", cliente_b)

        response = await api.get("/api/processes", params={"id": str(alheio.id)}, headers=AUTH_A)

        assert response.status_code == 404
        assert response.json()["detail"]["type"] == "not_found"
        assert "X-RateLimit-Limit" in response.headers

    async def test_detalhe_com_andamentos(self, api, db, fabrica, clientes) -> None:
        cliente_a, _, _ = clientes
        process = await fabrica.processo("1234567-89.2024.8.26.0100", cliente_a, cod_processo=10)
        db.add(ProcessMovement(cod_andamento=1, cod_processo=10, process_id=process.id, descricao="Juntada", data_andamento=agora_utc()))
        await db.commit()

        response = await api.get(
            "/api/processes",
            params={"id": str(process.id), "include": "movements,desconhecido"},
            headers=AUTH_A,
        )

        assert response.status_code == 200
        dados = response.json()["data"]
        assert dados["process_number"] == "1234567-89.2024.8.26.0100"
        assert [m["descricao"] for m in dados["movements"]] == ["Juntada"]
        assert "documents" not in dados

    async def test_detalhe_em_cache_reflete_alteracao_de_numero(self, api, cache, fabrica, clientes) -> None:
        cliente_a, _, _ = clientes
        process = await fabrica.processo("1234567-89.2024.8.26.0100", cliente_a, status_code=4)
        params = {"id": str(process.id)}

        antes = (await api.get("/api/processes", params=params, headers=AUTH_A)).json()["data"]
        assert antes["process_number"] == "1234567-89.2024.8.26.0100"
        assert any(k.startswith("detalhe:processes:") for k in cache.dados)

        alteracao = await api.post("/processes/actions", json={
            "action": "update_number",
            "process_id": str(process.id),
            "new_number": "7654321-00.2023.8.26.0001",
        })
        assert alteracao.status_code == 200

        depois = (await api.get("/api/processes", params=params, headers=AUTH_A)).json()["data"]
        assert depois["process_number"] == "7654321-00.2023.8.26.0001"
        assert depois["status_code"] == 2


class TestDistribuicoes:

    async def test_isoladas_pelos_termos_do_cliente(self, api, db, fabrica, clientes) -> None:
        cliente_a, cliente_b, service = clientes
        await fabrica.termo("Fulano de Tal", cliente_a)
        await fabrica.termo("Beltrano", cliente_b)
        db.add(Distribution(partner_service_id=service.id, cod_distribuicao=1, term="Fulano de Tal", distribution_date=agora_utc()))
        db.add(Distribution(partner_service_id=service.id, cod_distribuicao=2, term="Beltrano", distribution_date=agora_utc()))
        await db.commit()

        corpo_a = (await api.get("/api/distributions", headers=AUTH_A)).json()
        corpo_b = (await api.get("/api/distributions", headers=AUTH_B)).json()

        assert [d["cod_distribuicao"] for d in corpo_a["data"]] == [1]
        assert [d["cod_distribuicao"] for d in corpo_b["data"]] == [2]
