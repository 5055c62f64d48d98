from typing import Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings

CSRF_HEADER = "X-CSRF-Token"
TOKEN_MAX_AGE_SECS = 2 * 3600


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(get_settings().csrf_secret, salt="finances-csrf")


def generate_csrf_token(owner_id: Optional[int]) -> str:
    return _serializer().dumps({"u": owner_id})


def validate_csrf_token(
    token: Optional[str],
    owner_id: Optional[int],
    max_age: int = TOKEN_MAX_AGE_SECS,
) -> bool:
    if not token:
        return False
    try:
        data = _serializer().loads(token, max_age=max_age)
    except BadSignature:
        return False
    return isinstance(data, dict) and data.get("u") == owner_id
