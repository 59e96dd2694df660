import re
import time
import uuid

import bcrypt
from jose import jwt, JWTError

ALGORITHM = "HS256"
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# —— mots de passe (table d'identifiants locale) —— #
def hash_password(plain: str) -> str:
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("ascii")

def verify_password(plain: str, stored_hash: str) -> bool:
    if not plain or not stored_hash:
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), stored_hash.encode("ascii"))
    except (ValueError, TypeError):
        # hachage corrompu ou ancien format en clair
        return False

def looks_like_email(value: str) -> bool:
    return bool(EMAIL_RE.match(value or ""))

# —— jeton de session HTTP —— #
def issue_session_token(session: dict, secret: str, minutes: int) -> str:
    """Jeton signé portant la session ; `sub` = identifiant utilisateur."""
    claims = {
        "sub": session["user_id"],
        "email": session.get("email") or "",
        "name": session.get("display_name") or "",
        "anon": bool(session.get("is_anonymous")),
        "exp": int(time.time()) + minutes * 60,
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(claims, secret, algorithm=ALGORITHM)

def read_session_token(token: str, secret: str) -> dict | None:
    """Session décodée, ou None si le jeton est expiré, altéré ou incomplet."""
    try:
        claims = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if not claims.get("sub"):
        return None
    return {
        "user_id": str(claims["sub"]),
        "email": claims.get("email") or "",
        "display_name": claims.get("name") or "",
        "is_anonymous": bool(claims.get("anon")),
    }
