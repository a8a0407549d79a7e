"""Warning policy controls for atlascache diagnostics."""

from __future__ import annotations

import warnings
from collections.abc import Iterable
from dataclasses import dataclass

from atlascache.errors import DiagnosticError

STALE_CACHE = "W01"
CORRUPT_CACHE = "W02"
VERSION_MISMATCH = "W03"
PACKING_FAILED = "W04"
CACHE_WRITE_FAILED = "W05"
SECONDARY_UV_REPLACED = "W06"

CODE_DESCRIPTIONS: dict[str, str] = {
    STALE_CACHE: "lightmap cache built from different geometry",
    CORRUPT_CACHE: "lightmap cache unreadable or malformed",
    VERSION_MISMATCH: "lightmap cache written by another format version",
    PACKING_FAILED: "lightmap UV generation failed, mesh kept without lightmap UVs",
    CACHE_WRITE_FAILED: "lightmap cache could not be written",
    SECONDARY_UV_REPLACED: "source mesh second UV set replaced by lightmap UVs",
}

KNOWN_CODES: frozenset[str] = frozenset(CODE_DESCRIPTIONS)


class AtlasCacheWarning(UserWarning):
    """Warning with a machine-readable code."""

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        super().__init__(f"[{code}] {message}")

    @property
    def description(self) -> str:
        return CODE_DESCRIPTIONS.get(self.code, "")


@dataclass(frozen=True)
class WarningPolicy:
    """Controls how individual warning codes are handled.

    Suppression wins when a code appears in both sets.
    """

    warn_as_error: frozenset[str] = frozenset()
    suppress: frozenset[str] = frozenset()

    @classmethod
    def from_codes(
        cls, warn_as_error: Iterable[str] = (), suppress: Iterable[str] = ()
    ) -> WarningPolicy:
        return cls(warn_as_error=frozenset(warn_as_error), suppress=frozenset(suppress))


def emit_warning(code: str, message: str, *, policy: WarningPolicy | None = None) -> None:
    """Emit a warning, respecting the active policy.

    - If code is in ``policy.suppress``, the warning is silently dropped.
    - If code is in ``policy.warn_as_error``, a ``DiagnosticError`` is raised.
    - Otherwise an ``AtlasCacheWarning`` is issued via ``warnings.warn``.
    """
    if policy is not None:
        if code in policy.suppress:
            return
        if code in policy.warn_as_error:
            raise DiagnosticError(f"[{code}] {message}")

    warnings.warn(AtlasCacheWarning(code, message), stacklevel=2)


def describe_codes() -> str:
    """One ``Wnn: description`` line per known code, for help output."""
    return "\n".join(f"{code}: {CODE_DESCRIPTIONS[code]}" for code in sorted(CODE_DESCRIPTIONS))


def unknown_codes(codes: Iterable[str]) -> list[str]:
    return [code for code in codes if code not in KNOWN_CODES]


def parse_code_list(raw: str) -> frozenset[str]:
    """Parse a comma-separated string of W-codes and validate them.

    Raises ``ValueError`` for unknown codes.
    """
    tokens = [token.strip() for token in raw.split(",") if token.strip()]
    bad = unknown_codes(tokens)
    if bad:
        raise ValueError(f"Unknown warning code: {bad[0]!r} (known: {sorted(KNOWN_CODES)})")
    return frozenset(tokens)
