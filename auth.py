import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException
from fastapi.security import OAuth2PasswordBearer
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from clock import timestamp
from database import USERS, RecordStore, get_store, new_id
from errors import EmailAlreadyRegistered
from schemas import Role, User
from settings import access_token_expire_minutes, secret_key
from shops import public_user

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    return pwd_context.verify(password, hashed)


def create_access_token(user: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=access_token_expire_minutes()))
    to_encode = {"sub": user["id"], "role": user.get("role"), "exp": expire}
    return jwt.encode(to_encode, secret_key(), algorithm=ALGORITHM)


def register_user(store: RecordStore, name: str, email: str, password: str) -> Dict[str, Any]:
    with store.locked(USERS):
        users = store.read_all(USERS)
        if any(u.get("email", "").lower() == email.lower() for u in users):
            raise EmailAlreadyRegistered("User already exists")
        user = User(
            id=new_id("user"),
            name=name,
            email=email,
            password=hash_password(password),
            role=Role.USER,
            created_at=timestamp(),
        ).model_dump(mode="json")
        store.write_all(USERS, users + [user])
    logger.info("Registered user %s", user["id"])
    return user


def authenticate(store: RecordStore, email: str, password: str) -> Dict[str, Any]:
    user = next((u for u in store.read_all(USERS) if u.get("email", "").lower() == email.lower()), None)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.get("password"):
        raise HTTPException(status_code=401, detail="This account has no password, sign in with your identity provider")
    if not verify_password(password, user["password"]):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return user


def get_current_user(token: Optional[str] = Depends(oauth2_scheme), store: RecordStore = Depends(get_store)):
    if not token:
        raise HTTPException(status_code=401, detail="No token provided")
    try:
        payload = jwt.decode(token, secret_key(), algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    user_id = payload.get("sub")
    # Re-read so role changes apply to tokens issued before them
    user = store.find(USERS, user_id) if user_id else None
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return public_user(user)


def require_role(*roles: Role):
    def role_dep(current_user=Depends(get_current_user)):
        if current_user.get("role") not in roles:
            raise HTTPException(status_code=403, detail="Access denied")
        return current_user
    return role_dep
