"""
Hub de dados jurídicos: sincronização com parceiros e API para sistemas clientes
"""
__version__ = "1.0.0"
