from datetime import datetime, timezone


def agora_utc() -> datetime:
    return datetime.now(timezone.utc)


def como_utc(valor: datetime | None) -> datetime | None:
    """
    Garante datetime com fuso. Alguns drivers (SQLite) devolvem valores
    ingênuos; eles são gravados sempre em UTC.
    """
    if valor is None:
        return None
    if valor.tzinfo is None:
        return valor.replace(tzinfo=timezone.utc)
    return valor
