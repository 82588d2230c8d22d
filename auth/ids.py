"""
auth/ids.py -- Short, URL-safe record identifiers.

IDs are 12 characters drawn from [0-9a-zA-Z] using the secrets CSPRNG:
62^12 (~71 bits) makes collisions negligible at this scale, and the store's
primary key constraint catches the impossible case anyway.
"""

from __future__ import annotations

import secrets
import string

ID_ALPHABET = string.digits + string.ascii_lowercase + string.ascii_uppercase
ID_LENGTH = 12


def generate_id(size: int = ID_LENGTH) -> str:
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(size))
