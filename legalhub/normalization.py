"""
Funções de normalização para números de processo no padrão CNJ.

Formato aceito: NNNNNNN-DD.AAAA.J.TR.OOOO (ex: 1234567-89.2024.8.26.0100).
"""
import re

from .errors import InvalidProcessNumberError

CNJ_PATTERN = re.compile(r'^\d{7}-\d{2}\.\d{4}\.\d\.\d{2}\.\d{4}$')


def normalizar_numero_processo(numero: str) -> str:
    """Remove todos os caracteres não-numéricos de um número de processo."""
    return re.sub(r'\D', '', numero)


def formatar_numero_cnj(numero: str) -> str:
    """
    Formata um número de processo de 20 dígitos no padrão CNJ.

    Se o número não tiver exatamente 20 dígitos, retorna o valor original.
    """
    limpo = normalizar_numero_processo(numero)
    if len(limpo) != 20:
        return numero
    return f"{limpo[:7]}-{limpo[7:9]}.{limpo[9:13]}.{limpo[13]}.{limpo[14:16]}.{limpo[16:20]}"


def numero_cnj_valido(numero: str) -> bool:
    return bool(numero) and CNJ_PATTERN.match(numero) is not None


def validar_numero_cnj(numero: str) -> str:
    """
    Valida o número contra o padrão CNJ exato (pontuação incluída).

    Raises:
        InvalidProcessNumberError: se o número não casar com o padrão
    """
    numero = (numero or "").strip()
    if not numero_cnj_valido(numero):
        raise InvalidProcessNumberError(numero)
    return numero


def mascarar_token(token: str | None) -> str:
    """Mostra só os 8 primeiros caracteres de um token em logs."""
    if not token:
        return "***"
    return f"{token[:8]}***"
