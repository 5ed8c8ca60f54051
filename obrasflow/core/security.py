import base64
import binascii
import hmac

from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def _verify_legacy_base64(plain_password: str, stored: str) -> bool:
    # Imagens antigas do banco local guardavam a senha apenas codificada em base64.
    try:
        decoded = base64.b64decode(stored.strip(), validate=True)
    except (binascii.Error, ValueError):
        return False
    return hmac.compare_digest(decoded, plain_password.encode("utf-8"))


def verify_password_with_upgrade(plain_password: str, hashed_password: str) -> tuple[bool, bool]:
    if not hashed_password:
        return False, False
    if hashed_password.startswith("$argon2"):
        try:
            ok = pwd_context.verify(plain_password, hashed_password)
        except ValueError:
            return False, False
        return ok, ok and pwd_context.needs_update(hashed_password)
    if _verify_legacy_base64(plain_password, hashed_password):
        return True, True
    return False, False


def verify_password(plain_password: str, hashed_password: str) -> bool:
    ok, _ = verify_password_with_upgrade(plain_password, hashed_password)
    return ok


def get_password_hash(password: str) -> str:
    if not isinstance(password, str) or not password:
        raise ValueError("Senha invalida para hash: envie somente a senha em texto do usuario.")
    return pwd_context.hash(password)
