import os, base64, hashlib, getpass, socket

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from errors import ConfigurationError

_KDF_SALT = b"cashflow-credentials"
_KDF_ITERATIONS = 100_000


def _machine_key_material() -> bytes:
    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = "unknown"
    return f"{socket.gethostname()}:{user}:cashflow".encode("utf-8")


def _make_fernet():
    fk = (os.getenv("FERNET_KEY") or "").strip()
    if fk:
        pad = (-len(fk)) % 4  # pad to multiple of 4
        fk2 = fk + ("=" * pad)
        try:
            raw = base64.urlsafe_b64decode(fk2.encode("utf-8"))
        except ValueError:
            raw = b""
        if len(raw) == 32:
            return Fernet(fk2.encode("utf-8"))
    sec = (os.getenv("APP_SECRET") or "").strip()
    if sec:
        raw32 = hashlib.sha256(sec.encode("utf-8")).digest()[:32]
        return Fernet(base64.urlsafe_b64encode(raw32))
    # No explicit key: bind ciphertexts to this machine/user
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=32, salt=_KDF_SALT, iterations=_KDF_ITERATIONS)
    return Fernet(base64.urlsafe_b64encode(kdf.derive(_machine_key_material())))


def encrypt(s: str) -> str:
    return _make_fernet().encrypt(s.encode("utf-8")).decode("utf-8")


def decrypt(s: str) -> str:
    try:
        return _make_fernet().decrypt(s.encode("utf-8")).decode("utf-8")
    except InvalidToken as e:
        raise ConfigurationError("Stored credentials could not be decrypted with the current key") from e
