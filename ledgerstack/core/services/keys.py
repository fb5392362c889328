"""
Key material for stack members.

secp256k1 keypairs with Ethereum-style addresses, keystore v3 files for
signers, and the IPFS private-network swarm key.
"""

from __future__ import annotations

import os
import uuid
from dataclasses import dataclass, field
from typing import Any

from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from eth_hash.auto import keccak

# Light scrypt parameters, dev stacks only
_SCRYPT_N = 1 << 12
_SCRYPT_R = 8
_SCRYPT_P = 6


@dataclass(frozen=True)
class KeyPair:
    """0x-prefixed lowercase hex address and private key."""

    address: str
    private_key: str = field(repr=False)

    @property
    def private_key_hex(self) -> str:
        """Private key without the 0x prefix (keyfile format)."""
        return self.private_key[2:]


def _address_of(key: ec.EllipticCurvePrivateKey) -> str:
    public = key.public_key().public_bytes(Encoding.X962, PublicFormat.UncompressedPoint)
    return "0x" + keccak(public[1:])[-20:].hex()


def _private_hex(key: ec.EllipticCurvePrivateKey) -> str:
    return "0x" + key.private_numbers().private_value.to_bytes(32, "big").hex()


def new_keypair() -> KeyPair:
    """Generate a fresh secp256k1 keypair."""
    key = ec.generate_private_key(ec.SECP256K1())
    return KeyPair(address=_address_of(key), private_key=_private_hex(key))


def keypair_from_private_key(private_key: str) -> KeyPair:
    """Rebuild a KeyPair from a hex private key (with or without 0x)."""
    value = int(private_key.removeprefix("0x"), 16)
    key = ec.derive_private_key(value, ec.SECP256K1())
    return KeyPair(address=_address_of(key), private_key=_private_hex(key))


def keystore_v3(keypair: KeyPair, password: str) -> dict[str, Any]:
    """Encrypt a private key into a Web3 Secret Storage (v3) document."""
    salt = os.urandom(32)
    iv = os.urandom(16)
    derived = Scrypt(salt=salt, length=32, n=_SCRYPT_N, r=_SCRYPT_R, p=_SCRYPT_P).derive(
        password.encode("utf-8")
    )
    encryptor = Cipher(algorithms.AES(derived[:16]), modes.CTR(iv)).encryptor()
    ciphertext = encryptor.update(bytes.fromhex(keypair.private_key_hex)) + encryptor.finalize()
    mac = keccak(derived[16:32] + ciphertext)

    return {
        "address": keypair.address[2:],
        "crypto": {
            "cipher": "aes-128-ctr",
            "cipherparams": {"iv": iv.hex()},
            "ciphertext": ciphertext.hex(),
            "kdf": "scrypt",
            "kdfparams": {
                "dklen": 32,
                "n": _SCRYPT_N,
                "p": _SCRYPT_P,
                "r": _SCRYPT_R,
                "salt": salt.hex(),
            },
            "mac": mac.hex(),
        },
        "id": str(uuid.uuid4()),
        "version": 3,
    }


def decrypt_keystore_v3(document: dict[str, Any], password: str) -> str:
    """Recover the 0x-prefixed private key from a v3 keystore.

    Raises:
        ValueError: On a MAC mismatch (wrong password or corrupt file).
    """
    crypto = document["crypto"]
    params = crypto["kdfparams"]
    derived = Scrypt(
        salt=bytes.fromhex(params["salt"]),
        length=params["dklen"],
        n=params["n"],
        r=params["r"],
        p=params["p"],
    ).derive(password.encode("utf-8"))
    ciphertext = bytes.fromhex(crypto["ciphertext"])
    if keccak(derived[16:32] + ciphertext).hex() != crypto["mac"]:
        raise ValueError("keystore MAC mismatch")
    decryptor = Cipher(
        algorithms.AES(derived[:16]), modes.CTR(bytes.fromhex(crypto["cipherparams"]["iv"]))
    ).decryptor()
    return "0x" + (decryptor.update(ciphertext) + decryptor.finalize()).hex()


def new_swarm_key() -> str:
    """Pre-shared key for a private IPFS swarm."""
    return "/key/swarm/psk/1.0.0/\n/base16/\n" + os.urandom(32).hex()
