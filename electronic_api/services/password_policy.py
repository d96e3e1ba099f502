"""
Password complexity rules and hashing.
"""

from typing import List

import structlog
from passlib.context import CryptContext

from electronic_api.config import PasswordOptions

logger = structlog.get_logger(__name__)


class PasswordPolicy:
    """Checks candidate passwords against PasswordOptions."""

    def __init__(self, options: PasswordOptions):
        self.options = options

    def validate(self, password: str) -> List[str]:
        """
        Check a password against every configured rule.

        Args:
            password: Candidate password

        Returns:
            Messages for the rules that failed (empty if the password is acceptable)
        """
        options = self.options
        errors: List[str] = []

        if len(password) < options.required_length:
            errors.append(f"Passwords must be at least {options.required_length} characters.")

        if options.require_non_alphanumeric and all(c.isalnum() for c in password):
            errors.append("Passwords must have at least one non alphanumeric character.")

        if options.require_digit and not any("0" <= c <= "9" for c in password):
            errors.append("Passwords must have at least one digit ('0'-'9').")

        if options.require_lowercase and not any("a" <= c <= "z" for c in password):
            errors.append("Passwords must have at least one lowercase ('a'-'z').")

        if options.require_uppercase and not any("A" <= c <= "Z" for c in password):
            errors.append("Passwords must have at least one uppercase ('A'-'Z').")

        if len(set(password)) < options.required_unique_chars:
            errors.append(
                f"Passwords must use at least {options.required_unique_chars} different characters."
            )

        return errors


class PasswordHasher:
    """bcrypt hashing via passlib."""

    def __init__(self, rounds: int = 12):
        self.pwd_context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds
        )

    def hash_password(self, password: str) -> str:
        return self.pwd_context.hash(password)

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        """
        Verify a password against its hash.

        Malformed hashes count as a mismatch.
        """
        try:
            return self.pwd_context.verify(plain_password, hashed_password)
        except (ValueError, TypeError) as e:
            logger.error("password_verify_failed", error=str(e))
            return False

    def needs_rehash(self, hashed_password: str) -> bool:
        return self.pwd_context.needs_update(hashed_password)
