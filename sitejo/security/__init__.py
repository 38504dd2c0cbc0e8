"""Password hashing and bearer token primitives."""

from .passwords import hash_password, verify_password
from .tokens import IssuedToken, TokenCodec, hash_token

__all__ = ["IssuedToken", "TokenCodec", "hash_password", "hash_token", "verify_password"]
