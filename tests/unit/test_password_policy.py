"""
Unit tests for password rules and hashing.
"""

import pytest

from electronic_api.config import PasswordOptions
from electronic_api.services.password_policy import PasswordHasher, PasswordPolicy


@pytest.fixture
def policy() -> PasswordPolicy:
    return PasswordPolicy(PasswordOptions())


# ============================================================================
# PASSWORD POLICY
# ============================================================================


class TestPasswordPolicy:

    def test_acceptable_password(self, policy):
        assert policy.validate("Passw0rdX") == []

    def test_too_short(self, policy):
        assert policy.validate("Pa55w0r") == ["Passwords must be at least 8 characters."]

    def test_missing_digit(self, policy):
        assert policy.validate("Password") == ["Passwords must have at least one digit ('0'-'9')."]

    def test_missing_lowercase(self, policy):
        assert policy.validate("PASSW0RDX") == ["Passwords must have at least one lowercase ('a'-'z')."]

    def test_missing_uppercase(self, policy):
        assert policy.validate("passw0rdx") == ["Passwords must have at least one uppercase ('A'-'Z')."]

    def test_reports_every_failed_rule(self, policy):
        errors = policy.validate("abc")

        assert "Passwords must be at least 8 characters." in errors
        assert "Passwords must have at least one digit ('0'-'9')." in errors
        assert "Passwords must have at least one uppercase ('A'-'Z')." in errors
        assert len(errors) == 3

    def test_non_alphanumeric_not_required_by_default(self, policy):
        assert policy.validate("Passw0rdX") == []

    def test_non_alphanumeric_when_required(self):
        policy = PasswordPolicy(PasswordOptions(RequireNonAlphanumeric=True))

        assert policy.validate("Passw0rdX") == [
            "Passwords must have at least one non alphanumeric character."
        ]
        assert policy.validate("Passw0rd!") == []

    def test_unique_characters(self):
        policy = PasswordPolicy(PasswordOptions(
            RequiredUniqueChars=6,
            RequireDigit=False,
            RequireUppercase=False,
        ))

        assert policy.validate("aaaabbbb") == ["Passwords must use at least 6 different characters."]

    def test_custom_length(self):
        policy = PasswordPolicy(PasswordOptions(RequiredLength=12))

        assert policy.validate("Passw0rdX") == ["Passwords must be at least 12 characters."]


# ============================================================================
# PASSWORD HASHING
# ============================================================================


class TestPasswordHasher:

    @pytest.fixture
    def hasher(self) -> PasswordHasher:
        return PasswordHasher(rounds=4)

    def test_hash_verifies(self, hasher):
        hashed = hasher.hash_password("Passw0rdX")

        assert hashed != "Passw0rdX"
        assert hasher.verify_password("Passw0rdX", hashed)
        assert not hasher.verify_password("passw0rdx", hashed)

    def test_hashes_are_salted(self, hasher):
        assert hasher.hash_password("Passw0rdX") != hasher.hash_password("Passw0rdX")

    def test_malformed_hash_is_a_mismatch(self, hasher):
        assert not hasher.verify_password("Passw0rdX", "not-a-bcrypt-hash")

