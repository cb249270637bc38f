"""
Regras de negócio: sincronização com parceiros, ciclo de vida dos processos,
documentos, segurança da API de clientes e webhooks
"""
