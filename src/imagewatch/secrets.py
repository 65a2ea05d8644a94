"""Stored registry credentials and their decryption."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field

from imagewatch.registry.base import RegistryCredentials


class EncryptedCredential(BaseModel):
    """A user's registry login as stored, password still encrypted."""

    model_config = {"frozen": True}

    registry_id: str = Field(default="docker", description="Registry the login is for")
    user_id: int = Field(description="Owning user")
    username: str = Field(description="Registry username")
    encrypted_password: str = Field(description="Encrypted password")
    encrypted_key: str = Field(default="", description="Encrypted data key")


@runtime_checkable
class CredentialDecrypter(Protocol):
    """Decrypts values sealed with an envelope (data key plus ciphertext)."""

    def decrypt(self, encrypted_key: str, encrypted_value: str) -> str:
        """Return the plaintext of ``encrypted_value``.

        Raises:
            Exception: Implementation specific, on any decryption failure
        """
        ...


class PlaintextDecrypter:
    """Decrypter for stores that keep passwords unencrypted (local use and tests)."""

    def decrypt(self, encrypted_key: str, encrypted_value: str) -> str:
        return encrypted_value


def decrypt_credential(decrypter: CredentialDecrypter, credential: EncryptedCredential) -> RegistryCredentials:
    """Turn a stored credential into usable registry credentials."""
    password = decrypter.decrypt(credential.encrypted_key, credential.encrypted_password)
    return RegistryCredentials(username=credential.username, password=password)
