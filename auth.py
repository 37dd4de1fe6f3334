"""
Google identity resolution and session credentials.

Google proves who the caller is; everything after that is ours. The bearer
token we issue only carries ``{id, role}``, and the user row is re-read on
every protected request, so a role change applies from the next request on.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import requests
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from google.auth.exceptions import GoogleAuthError
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token as google_id_token
from jose import JWTError, jwt

from config import get_settings
from database import collection, sanitize, to_obj_id
from errors import AuthError, ForbiddenError, IdentityError, NotFoundError

logger = logging.getLogger(__name__)

GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/google")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/google", auto_error=False)


@dataclass
class Identity:
    email: str
    name: str
    picture: Optional[str]
    external_id: str


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def normalize_identity(claims: Dict[str, Any]) -> Identity:
    email = normalize_email(claims.get("email"))
    if not email:
        raise IdentityError("Google account has no email address")
    return Identity(
        email=email,
        name=claims.get("name") or email.split("@")[0],
        picture=claims.get("picture"),
        external_id=str(claims.get("sub") or ""),
    )


def _verify_id_token(token: str) -> Dict[str, Any]:
    settings = get_settings()
    audience = settings.google_client_ids or None
    try:
        return google_id_token.verify_oauth2_token(token, google_requests.Request(), audience=audience)
    except (ValueError, GoogleAuthError) as exc:
        if not settings.allow_unverified_id_tokens:
            raise IdentityError("Invalid Google Token") from exc
        logger.warning("ID token verification failed, decoding without verification: %s", exc)
        try:
            claims = jwt.get_unverified_claims(token)
        except JWTError:
            raise IdentityError("Invalid Google Token") from exc
        if not claims.get("sub") or not claims.get("email"):
            raise IdentityError("Invalid Google Token") from exc
        return claims


def _fetch_userinfo(access_token: str) -> Dict[str, Any]:
    try:
        response = requests.get(
            GOOGLE_USERINFO_URL,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=10,
        )
        response.raise_for_status()
    except requests.RequestException as exc:
        raise IdentityError("Invalid Google Token") from exc
    return response.json()


def resolve_identity(token: Optional[str] = None, access_token: Optional[str] = None) -> Identity:
    if token:
        claims = _verify_id_token(token)
    elif access_token:
        claims = _fetch_userinfo(access_token)
    else:
        raise IdentityError("No authentication token provided")
    identity = normalize_identity(claims)
    logger.info("Resolved Google identity for %s", identity.email)
    return identity


def create_access_token(user: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    settings = get_settings()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(days=settings.token_expire_days))
    to_encode = {"id": str(user["id"]), "role": user["role"], "exp": expire}
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def user_from_token(token: str) -> Dict[str, Any]:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise AuthError("Could not validate credentials")
    user_id = payload.get("id")
    if not user_id:
        raise AuthError("Could not validate credentials")
    try:
        user = collection("user").find_one({"_id": to_obj_id(user_id)})
    except NotFoundError:
        raise AuthError("Could not validate credentials")
    if not user:
        raise AuthError("Could not validate credentials")
    return sanitize(user)


def get_current_user(token: str = Depends(oauth2_scheme)) -> Dict[str, Any]:
    return user_from_token(token)


def get_optional_user(token: Optional[str] = Depends(optional_oauth2_scheme)) -> Optional[Dict[str, Any]]:
    if not token:
        return None
    try:
        return user_from_token(token)
    except AuthError:
        return None


def require_role(*roles: str):
    def role_dep(current_user=Depends(get_current_user)):
        if current_user.get("role") not in roles:
            raise ForbiddenError("Insufficient permissions")
        return current_user
    return role_dep
