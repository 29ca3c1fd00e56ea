"""Retry budget carried inside the auto-import secret.

The secret stores the number of remaining import attempts as decimal text
under ``autoImportRetry``. Every failed import spends one attempt; once the
budget drops below zero the secret is deleted and the import is abandoned.
The secret's lifetime is therefore the audit trail of the budget: it
disappears exactly when the import succeeds or the retries run out.
"""

import re
from dataclasses import dataclass

from constants import AUTO_IMPORT_RETRY_KEY
from models import BootstrapCredential, ConfigurationError

_COUNTER_RE = re.compile(r"[0-9]+")


@dataclass(frozen=True)
class RetryBudget:
    """Remaining import attempts for one cluster."""

    count: int

    @classmethod
    def parse(cls, value: str | None) -> "RetryBudget":
        """Parse the counter text stored in the secret.

        Raises:
            ConfigurationError: If the value is missing, not a decimal
                integer, or negative.
        """
        if value is None:
            raise ConfigurationError(
                f"{AUTO_IMPORT_RETRY_KEY} is missing from the auto-import secret"
            )
        text = value.strip()
        if not _COUNTER_RE.fullmatch(text):
            raise ConfigurationError(
                f"The value of {AUTO_IMPORT_RETRY_KEY} is invalid: {value!r}"
            )
        return cls(int(text))

    @classmethod
    def from_credential(cls, credential: BootstrapCredential) -> "RetryBudget":
        return cls.parse(credential.data.get(AUTO_IMPORT_RETRY_KEY))

    def serialize(self) -> str:
        return str(self.count)

    def apply_to(self, credential: BootstrapCredential) -> BootstrapCredential:
        """Return a copy of the secret carrying this budget, nothing else changed."""
        return credential.with_value(AUTO_IMPORT_RETRY_KEY, self.serialize())

    def spend(self, credential: BootstrapCredential) -> "RetryAction":
        """Spend one attempt after a failed import of ``credential``."""
        remaining = self.count - 1
        if remaining < 0:
            return DeleteExhausted()
        return Decrement(
            credential=RetryBudget(remaining).apply_to(credential),
            remaining=remaining,
        )


@dataclass(frozen=True)
class Decrement:
    """Keep the secret and persist the lowered counter."""

    credential: BootstrapCredential
    remaining: int


@dataclass(frozen=True)
class DeleteExhausted:
    """The budget is spent; delete the secret instead of updating it."""


RetryAction = Decrement | DeleteExhausted


def on_failure(credential: BootstrapCredential) -> RetryAction:
    """Decide what a failed import does to the secret.

    Raises:
        ConfigurationError: If the counter cannot be parsed. The secret must
            be left untouched in that case.
    """
    return RetryBudget.from_credential(credential).spend(credential)
