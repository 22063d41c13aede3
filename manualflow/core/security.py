from dataclasses import dataclass
from typing import Optional

from jose import JWTError, jwt

from manualflow.core.config import Settings, get_settings


@dataclass(frozen=True)
class Identity:
    """The authenticated caller of an API request."""
    username: str
    role: Optional[str] = None

    def is_admin(self, settings: Optional[Settings] = None) -> bool:
        settings = settings or get_settings()
        return self.role == settings.admin_role


def decode_token(token: str, settings: Optional[Settings] = None) -> Optional[Identity]:
    """Decode and validate a JWT. Returns the caller identity if valid."""
    settings = settings or get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None

    username = payload.get("username") or payload.get("sub")
    if not username:
        return None
    return Identity(username=str(username), role=payload.get("role"))
