"""Utility functions for the company service: service settings and credential hashing."""

import os
import logging
from passlib.context import CryptContext
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# --- Registry settings ---
REGISTRY_BASE_URL = os.getenv("REGISTRY_BASE_URL", "https://api.cnpja.com")
REGISTRY_API_KEY = os.getenv("REGISTRY_API_KEY")
if not REGISTRY_API_KEY:
    logger.error("REGISTRY_API_KEY is not defined. Tax id lookups will be rejected by the registry.")

# --- Credential hashing ---
PASSWORD_HASH_ROUNDS = int(os.getenv("PASSWORD_HASH_ROUNDS", 12))

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=PASSWORD_HASH_ROUNDS,
)

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Checks a plain password against a stored hash."""
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password: str) -> str:
    """Hashes a plain password with bcrypt."""
    return pwd_context.hash(password)
