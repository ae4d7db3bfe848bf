"""Sandbox decision contract.

The runtime does not define sandbox rules; it only consumes a validator's
verdict. Every check answers with one of three outcomes: the operation is
allowed, denied with a reason, or allowed only after explicit user
approval. Tools translate their parameters into path/command/URL checks
via ``Tool.sandbox_check``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Protocol


class SandboxVerdict(str, Enum):
    ALLOWED = "allowed"
    DENIED = "denied"
    REQUIRES_APPROVAL = "requires_approval"


@dataclass(frozen=True)
class SandboxDecision:
    verdict: SandboxVerdict
    reason: str = ""

    @classmethod
    def allowed(cls) -> "SandboxDecision":
        return cls(SandboxVerdict.ALLOWED)

    @classmethod
    def denied(cls, reason: str) -> "SandboxDecision":
        return cls(SandboxVerdict.DENIED, reason)

    @classmethod
    def requires_approval(cls, reason: str) -> "SandboxDecision":
        return cls(SandboxVerdict.REQUIRES_APPROVAL, reason)

    @property
    def is_allowed(self) -> bool:
        return self.verdict == SandboxVerdict.ALLOWED

    @property
    def is_denied(self) -> bool:
        return self.verdict == SandboxVerdict.DENIED

    @property
    def needs_approval(self) -> bool:
        return self.verdict == SandboxVerdict.REQUIRES_APPROVAL


class SandboxValidator(Protocol):
    def validate_path(self, path: str, write: bool = False) -> SandboxDecision: ...

    def validate_command(self, command: str) -> SandboxDecision: ...

    def validate_url(self, url: str) -> SandboxDecision: ...


class PermissiveSandbox:
    """Validator that allows everything. Used when no sandbox is configured."""

    def validate_path(self, path: str, write: bool = False) -> SandboxDecision:
        return SandboxDecision.allowed()

    def validate_command(self, command: str) -> SandboxDecision:
        return SandboxDecision.allowed()

    def validate_url(self, url: str) -> SandboxDecision:
        return SandboxDecision.allowed()
