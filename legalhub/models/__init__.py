"""
Models do banco de dados
"""
from .partner import Partner, PartnerService, SERVICE_TYPES
from .client import ClientSystem, ClientSystemService, ClientProcess, ClientSearchTerm, ClientWebhook
from .processo import Process, ProcessMovement, ProcessDocument, ProcessCover, ProcessParty
from .distribuicao import Distribution
from .publicacao import Publication, PublicationTermMatch
from .termo import SearchTerm
from .seguranca import ApiToken, IpRule, SecurityLogEntry, ApiRequest
from .entrega import ApiDeliveryCursor
from .sync_log import SyncLog

__all__ = [
    "Partner",
    "PartnerService",
    "SERVICE_TYPES",
    "ClientSystem",
    "ClientSystemService",
    "ClientProcess",
    "ClientSearchTerm",
    "ClientWebhook",
    "Process",
    "ProcessMovement",
    "ProcessDocument",
    "ProcessCover",
    "ProcessParty",
    "Distribution",
    "Publication",
    "PublicationTermMatch",
    "SearchTerm",
    "ApiToken",
    "IpRule",
    "SecurityLogEntry",
    "ApiRequest",
    "ApiDeliveryCursor",
    "SyncLog",
]
