from typing import Optional

import bcrypt
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from config import get_settings


class TokenExpired(ValueError):
    pass


class TokenInvalid(ValueError):
    pass


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.secret_key, salt="access-token")


def generate_access_token(user_id: str, email: str) -> str:
    return _serializer().dumps({"u": user_id, "e": email})


def decode_access_token(token: str, max_age_hours: Optional[int] = None) -> str:
    """Return the user id carried by ``token``.

    Raises ``TokenExpired`` once the token is older than the configured max age
    and ``TokenInvalid`` for anything that does not verify.
    """
    if max_age_hours is None:
        max_age_hours = get_settings().token_max_age_hours
    try:
        data = _serializer().loads(token, max_age=max_age_hours * 3600)
    except SignatureExpired as exc:
        raise TokenExpired("Invalid or expired token") from exc
    except BadSignature as exc:
        raise TokenInvalid("Invalid or expired token") from exc

    user_id = data.get("u") if isinstance(data, dict) else None
    if not user_id:
        raise TokenInvalid("Invalid or expired token")
    return user_id
