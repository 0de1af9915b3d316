"""
Secret/profile resolution capability.

The engine does not resolve ``$<<<kind:name[:vault]>>>`` references itself;
it calls whatever ``ProfileResolver`` it was constructed with.  A resolver
returns the value or raises ``ProfileNotFoundError``; the engine turns that
into a ``ProfileResolutionError`` and lets anything else propagate.
"""

from typing import Mapping, Optional, Protocol, Tuple, Union, runtime_checkable

PROFILE_KINDS = ("password", "secret", "profile")


class ProfileNotFoundError(LookupError):
    """Raised by a resolver when the requested value does not exist."""


@runtime_checkable
class ProfileResolver(Protocol):
    def resolve(self, kind: str, name: str, vault: Optional[str] = None) -> str:
        ...


class NullProfileResolver:
    """Default resolver: every lookup is not found."""

    def resolve(self, kind: str, name: str, vault: Optional[str] = None) -> str:
        raise ProfileNotFoundError(f"No profile resolver configured for {kind} [{name}].")


ProfileKey = Union[str, Tuple[str, str], Tuple[str, str, Optional[str]]]


class DictProfileResolver:
    """
    Resolves references from an in-memory mapping.

    Keys may be tuples ``(kind, name)`` / ``(kind, name, vault)`` or the
    reference body itself, ``"kind:name"`` / ``"kind:name:vault"``.  A lookup
    with a vault falls back to the vault-less entry.
    """

    def __init__(self, values: Mapping[ProfileKey, str]):
        self._values = {}
        for key, value in values.items():
            self._values[self._normalize(key)] = value

    @staticmethod
    def _normalize(key: ProfileKey) -> Tuple[str, str, Optional[str]]:
        if isinstance(key, str):
            key = tuple(key.split(":"))
        if len(key) == 2:
            return key[0], key[1], None
        if len(key) == 3:
            return key[0], key[1], key[2] or None
        raise ValueError(f"Invalid profile key: {key!r}")

    def resolve(self, kind: str, name: str, vault: Optional[str] = None) -> str:
        for key in ((kind, name, vault), (kind, name, None)):
            if key in self._values:
                return self._values[key]
        where = f" in vault [{vault}]" if vault else ""
        raise ProfileNotFoundError(f"{kind.capitalize()} [{name}] not found{where}.")
