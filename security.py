import logging
import re
import secrets
from datetime import timedelta
from typing import Optional

from fastapi import Depends, Header
from jose import JWTError, jwt
from passlib.context import CryptContext

import config
from database import db, to_object_id, utcnow
from errors import BadRequest, Forbidden, Unauthorized

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

SYMBOL_RE = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]")


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        return False


def validate_password(password: str) -> None:
    """Raise BadRequest when ``password`` misses the configured strength rules."""
    password = password or ""
    if len(password) < config.PASSWORD_MIN_LENGTH:
        raise BadRequest(f"Password must be at least {config.PASSWORD_MIN_LENGTH} characters long")
    if not config.PASSWORD_REQUIRE_CLASSES:
        return
    if not re.search(r"[A-Z]", password):
        raise BadRequest("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        raise BadRequest("Password must contain at least one lowercase letter")
    if not re.search(r"\d", password):
        raise BadRequest("Password must contain at least one number")
    if not SYMBOL_RE.search(password):
        raise BadRequest("Password must contain at least one symbol (!@#$%^&*)")


def public_user(user: dict) -> dict:
    return {
        "id": str(user["_id"]),
        "name": user.get("name", ""),
        "email": user.get("email", ""),
        "role": user.get("role", "customer"),
    }


# Auth tokens
def create_token(user: dict) -> str:
    payload = {
        "id": str(user["_id"]),
        "role": user.get("role", "customer"),
        "email": user.get("email"),
        "exp": utcnow() + timedelta(days=config.JWT_EXPIRE_DAYS),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALG)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALG])
    except JWTError:
        raise Unauthorized("Invalid token")


# Password reset
def generate_reset_code(length: int = config.RESET_CODE_LENGTH) -> str:
    return f"{secrets.randbelow(10 ** length):0{length}d}"


def _reset_signing_key(user: dict) -> str:
    # the current hash is part of the key, so a password change voids outstanding tokens
    return config.JWT_SECRET + user.get("password_hash", "")


def create_reset_token(user: dict, code: str) -> str:
    payload = {
        "user_id": str(user["_id"]),
        "email": user["email"],
        "reset_code": code,
        "exp": utcnow() + timedelta(minutes=config.RESET_TOKEN_MINUTES),
    }
    return jwt.encode(payload, _reset_signing_key(user), algorithm=config.JWT_ALG)


def verify_reset_token(user: dict, token: str) -> bool:
    try:
        payload = jwt.decode(token, _reset_signing_key(user), algorithms=[config.JWT_ALG])
    except JWTError:
        return False
    return payload.get("user_id") == str(user["_id"])


# Dependencies
def get_current_user(authorization: Optional[str] = Header(None)) -> dict:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise Unauthorized("No token provided")
    token = authorization.split(" ", 1)[1].strip()
    if not token:
        raise Unauthorized("No token provided")
    payload = decode_token(token)
    user_id = payload.get("id")
    if not user_id:
        raise Unauthorized("Invalid token payload")
    user = db["user"].find_one({"_id": to_object_id(user_id)}, {"password_hash": 0})
    if not user or user.get("is_active") is False:
        raise Unauthorized("User not found or inactive")
    return user


def require_admin(user=Depends(get_current_user)) -> dict:
    if user.get("role") != "admin":
        raise Forbidden("Admin access required")
    return user


def require_customer(user=Depends(get_current_user)) -> dict:
    if user.get("role") != "customer":
        raise Forbidden("Customer access required")
    return user


def ensure_admin() -> Optional[dict]:
    """Provision the single admin account from configuration, once."""
    if db is None:
        return None
    existing = db["user"].find_one({"role": "admin"})
    if existing:
        if existing.get("email") != config.ADMIN_EMAIL and config.ADMIN_EMAIL:
            logger.warning("An admin account already exists as %s; ADMIN_EMAIL is ignored", existing.get("email"))
        return existing
    if not config.ADMIN_EMAIL or not config.ADMIN_PASSWORD:
        logger.warning("ADMIN_EMAIL/ADMIN_PASSWORD not set; no admin account provisioned")
        return None
    now = utcnow()
    admin = {
        "name": config.ADMIN_NAME,
        "email": config.ADMIN_EMAIL,
        "password_hash": hash_password(config.ADMIN_PASSWORD),
        "role": "admin",
        "admin_slot": "admin",
        "is_active": True,
        "created_at": now,
        "updated_at": now,
    }
    admin["_id"] = db["user"].insert_one(admin).inserted_id
    logger.info("Admin account provisioned for %s", config.ADMIN_EMAIL)
    return admin
