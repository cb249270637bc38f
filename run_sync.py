#!/usr/bin/env python3
"""
Executa uma rodada de sincronização com os parceiros (chamado pelo cron).

Usage:
    python run_sync.py
    python run_sync.py --services processes publications --force
    python run_sync.py --sequential --download-documents --notify
    python run_sync.py --services publications --start-date 2024-05-01 --end-date 2024-05-31

Configuração lida do .env (DATABASE_*, FERNET_KEY, STORAGE_*, REDIS_*).
"""

import argparse
import asyncio
import logging
import sys
from datetime import date

import httpx
import orjson

from legalhub.cache import RedisCache
from legalhub.config import settings
from legalhub.crypto import SecretCipher
from legalhub.database import build_engine, build_session_factory, close_db
from legalhub.errors import NoActiveServicesError
from legalhub.partner import PartnerConnector
from legalhub.schemas.sync import SyncDomain, SyncRequest
from legalhub.services.orchestrator import SyncOrchestrator
from legalhub.storage import DocumentStorage

logger = logging.getLogger("run_sync")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument(
        "--services",
        nargs="+",
        choices=[d.value for d in SyncDomain],
        default=[d.value for d in SyncDomain],
        help="Domínios a sincronizar",
    )
    parser.add_argument("--service-id", action="append", dest="service_ids", help="Restringe a um serviço (repetível)")
    parser.add_argument("--force", action="store_true", help="Ignora o intervalo mínimo entre sincronizações")
    parser.add_argument("--sequential", action="store_true", help="Não paraleliza processos e distribuições")
    parser.add_argument("--notify", action="store_true", help="Dispara os webhooks dos clientes")
    parser.add_argument("--download-documents", action="store_true", help="Materializa um lote de documentos")
    parser.add_argument("--start-date", type=date.fromisoformat, help="Publicações por período: data inicial (AAAA-MM-DD)")
    parser.add_argument("--end-date", type=date.fromisoformat, help="Publicações por período: data final (AAAA-MM-DD)")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    pedido = SyncRequest(
        services=args.services,
        service_ids=args.service_ids,
        force=args.force,
        parallel=not args.sequential,
        notify=args.notify,
        download_documents=args.download_documents,
        start_date=args.start_date,
        end_date=args.end_date,
    )

    engine = build_engine(settings)
    http = httpx.AsyncClient(timeout=httpx.Timeout(settings.PARTNER_TIMEOUT))
    cache = RedisCache(settings)
    try:
        orchestrator = SyncOrchestrator(
            build_session_factory(engine),
            PartnerConnector(http, SecretCipher.from_settings(settings)),
            http=http,
            storage=DocumentStorage.from_settings(http, settings) if settings.STORAGE_URL else None,
            cache=cache,
        )
        try:
            resultado = await orchestrator.executar(pedido)
        except NoActiveServicesError as e:
            logger.warning(str(e))
            return 0

        print(orjson.dumps(resultado, option=orjson.OPT_INDENT_2).decode())
        return 0 if resultado["success"] else 1
    finally:
        await cache.close()
        await http.aclose()
        await close_db(engine)


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
