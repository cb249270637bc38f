"""
Registros tipados dos payloads dos parceiros

Todo JSON/XML recebido de um parceiro passa por estes schemas antes de ser
persistido. Registros que não validam viram erros de dados e não são
confirmados, para que o parceiro os entregue de novo.
"""
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, PrivateAttr, ValidationError, field_validator


_FORMATOS_DATA = ("%d/%m/%Y %H:%M:%S", "%d/%m/%Y %H:%M", "%d/%m/%Y", "%Y-%m-%d %H:%M:%S", "%Y-%m-%d")


def parse_data_parceiro(valor: Any) -> Optional[datetime]:
    """Aceita ISO 8601 ou o formato brasileiro dd/mm/aaaa; sempre devolve UTC."""
    if valor in (None, ""):
        return None
    if isinstance(valor, datetime):
        data = valor
    else:
        texto = str(valor).strip()
        try:
            data = datetime.fromisoformat(texto.replace("Z", "+00:00"))
        except ValueError:
            for formato in _FORMATOS_DATA:
                try:
                    data = datetime.strptime(texto, formato)
                    break
                except ValueError:
                    continue
            else:
                raise ValueError(f"Data em formato desconhecido: {texto}")
    if data.tzinfo is None:
        data = data.replace(tzinfo=timezone.utc)
    return data.astimezone(timezone.utc)


class RegistroParceiro(BaseModel):
    """Base dos registros recebidos. ``codigo`` é o código usado na confirmação."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    _bruto: dict = PrivateAttr(default_factory=dict)

    @property
    def codigo(self) -> int:
        raise NotImplementedError

    @property
    def bruto(self) -> dict:
        return self._bruto

    @classmethod
    def parse(cls, bruto: Any):
        if not isinstance(bruto, dict):
            raise ValueError(f"Registro não é um objeto: {type(bruto).__name__}")
        registro = cls.model_validate(bruto)
        registro._bruto = bruto
        return registro


class _ComDatas(RegistroParceiro):
    @field_validator("*", mode="before")
    @classmethod
    def _datas(cls, valor, info):
        if info.field_name and info.field_name.startswith("data_"):
            return parse_data_parceiro(valor)
        return valor


class AndamentoParceiro(_ComDatas):
    cod_andamento: int = Field(validation_alias=AliasChoices("codAndamento", "cod_andamento"))
    cod_processo: int = Field(validation_alias=AliasChoices("codProcesso", "cod_processo"))
    data_andamento: Optional[datetime] = Field(None, validation_alias=AliasChoices("dataAndamento", "data_andamento"))
    descricao: Optional[str] = None
    tipo: Optional[str] = Field(None, validation_alias=AliasChoices("tipoAndamento", "tipo"))

    @property
    def codigo(self) -> int:
        return self.cod_andamento


class DocumentoParceiro(RegistroParceiro):
    cod_documento: int = Field(validation_alias=AliasChoices("codDocumento", "cod_documento"))
    cod_processo: int = Field(validation_alias=AliasChoices("codProcesso", "cod_processo"))
    cod_andamento: Optional[int] = Field(None, validation_alias=AliasChoices("codAndamento", "cod_andamento"))
    nome_arquivo: Optional[str] = Field(None, validation_alias=AliasChoices("nomeArquivo", "nome_arquivo"))
    tipo_documento: Optional[str] = Field(None, validation_alias=AliasChoices("tipoDocumento", "tipo_documento"))
    url_documento: Optional[str] = Field(None, validation_alias=AliasChoices("urlDocumento", "documentoUrl", "url"))

    @property
    def codigo(self) -> int:
        return self.cod_documento


class AdvogadoParceiro(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    nome: str = Field(validation_alias=AliasChoices("nomeAdvogado", "nome"))
    num_oab: Optional[str] = Field(None, validation_alias=AliasChoices("numOAB", "numeroOAB", "oab"))
    uf: Optional[str] = None
    tipo_oab: Optional[str] = Field(None, validation_alias=AliasChoices("tipoOAB", "tipo_oab"))

    @field_validator("num_oab", mode="before")
    @classmethod
    def _oab_texto(cls, valor):
        return None if valor is None else str(valor)


class PoloParceiro(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    cod_parte: int = Field(validation_alias=AliasChoices("codProcessoPolo", "codParte"))
    nome: str
    tipo_polo: Optional[str] = Field(None, validation_alias=AliasChoices("tipoPolo", "polo"))
    cpf: Optional[str] = None
    cnpj: Optional[str] = None
    advogados: list[AdvogadoParceiro] = Field(default_factory=list)

    @property
    def documento(self) -> Optional[str]:
        return self.cpf or self.cnpj


class CapaParceiro(_ComDatas):
    cod_processo: int = Field(validation_alias=AliasChoices("codProcesso", "cod_processo"))
    classe: Optional[str] = None
    assunto: Optional[str] = None
    juiz: Optional[str] = None
    valor_causa: Optional[str] = Field(None, validation_alias=AliasChoices("valorCausa", "valor_causa"))
    data_distribuicao: Optional[datetime] = Field(None, validation_alias=AliasChoices("dataDistribuicao", "data_distribuicao"))
    polos: list[PoloParceiro] = Field(default_factory=list)

    @field_validator("valor_causa", mode="before")
    @classmethod
    def _valor_texto(cls, valor):
        return None if valor is None else str(valor)

    @property
    def codigo(self) -> int:
        return self.cod_processo


class DistribuicaoParceiro(_ComDatas):
    cod_distribuicao: int = Field(validation_alias=AliasChoices("codDistribuicao", "id"))
    numero_processo: Optional[str] = Field(None, validation_alias=AliasChoices("numeroProcesso", "numProcesso"))
    tribunal: Optional[str] = None
    orgao_julgador: Optional[str] = Field(None, validation_alias=AliasChoices("orgaoJulgador", "orgao_julgador"))
    data_distribuicao: Optional[datetime] = Field(None, validation_alias=AliasChoices("dataDistribuicao", "data_distribuicao"))
    termo: Optional[str] = Field(None, validation_alias=AliasChoices("nomePesquisado", "termo"))

    @property
    def codigo(self) -> int:
        return self.cod_distribuicao


class PublicacaoParceiro(_ComDatas):
    cod_publicacao: int = Field(validation_alias=AliasChoices("codPublicacao", "id"))
    nome_diario: Optional[str] = Field(None, validation_alias=AliasChoices("nomeGazeta", "nomeDiario", "diario"))
    data_publicacao: Optional[datetime] = Field(None, validation_alias=AliasChoices("dataPublicacao", "data_publicacao"))
    conteudo: Optional[str] = Field(None, validation_alias=AliasChoices("conteudo", "texto"))
    numero_processo: Optional[str] = Field(None, validation_alias=AliasChoices("numeroProcesso", "numProcesso"))

    @property
    def codigo(self) -> int:
        return self.cod_publicacao


class StatusProcessoParceiro(RegistroParceiro):
    """Situação de cadastro de um processo (BuscaProcessos / BuscaStatusProcesso)"""
    cod_processo: Optional[int] = Field(None, validation_alias=AliasChoices("codProcesso", "cod_processo"))
    numero_processo: Optional[str] = Field(None, validation_alias=AliasChoices("numProcesso", "numeroProcesso"))
    cod_status: int = Field(validation_alias=AliasChoices("codStatus", "status"))
    descricao_status: Optional[str] = Field(None, validation_alias=AliasChoices("descricaoStatus", "descricao_status"))
    descricao_classificacao: Optional[str] = Field(None, validation_alias=AliasChoices("descricaoClassificacaoStatus",))
    tribunal: Optional[str] = None
    uf: Optional[str] = None
    instancia: Optional[str] = None

    @field_validator("instancia", mode="before")
    @classmethod
    def _instancia_texto(cls, valor):
        return None if valor is None else str(valor)

    @property
    def codigo(self) -> int:
        return self.cod_processo or 0

    @property
    def mensagem(self) -> Optional[str]:
        return self.descricao_classificacao or self.descricao_status


def parse_lote(modelo: type[RegistroParceiro], brutos: Any) -> tuple[list, list[str]]:
    """
    Converte um lote bruto em registros tipados.

    Returns:
        (registros válidos, mensagens de erro dos inválidos)
    """
    if brutos is None:
        return [], []
    if isinstance(brutos, dict):
        # Alguns endpoints embrulham a lista em {"data": [...]}
        brutos = brutos.get("data", brutos.get("itens", [brutos]))
    if not isinstance(brutos, list):
        return [], [f"Resposta inesperada: {type(brutos).__name__}"]

    registros, erros = [], []
    for indice, bruto in enumerate(brutos):
        try:
            registros.append(modelo.parse(bruto))
        except ValidationError as e:
            primeiro = e.errors()[0]
            campo = ".".join(str(parte) for parte in primeiro["loc"])
            erros.append(f"{modelo.__name__}[{indice}] {campo}: {primeiro['msg']}")
        except ValueError as e:
            erros.append(f"{modelo.__name__}[{indice}]: {e}")
    return registros, erros
