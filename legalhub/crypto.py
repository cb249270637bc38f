"""
Criptografia Fernet dos tokens estáticos dos parceiros.

O token de cada PartnerService fica cifrado no banco e só é decifrado no
momento de montar as credenciais de uma passada de sincronização.
"""
from cryptography.fernet import Fernet, InvalidToken

from .config import Settings


class SecretCipher:
    def __init__(self, key: str):
        if not key:
            raise RuntimeError("FERNET_KEY não configurado")
        self._fernet = Fernet(key.encode())

    @classmethod
    def from_settings(cls, settings: Settings) -> "SecretCipher":
        return cls(settings.FERNET_KEY)

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        try:
            return self._fernet.decrypt(ciphertext.encode()).decode()
        except InvalidToken as e:
            raise ValueError("Token cifrado inválido ou chave incorreta") from e
