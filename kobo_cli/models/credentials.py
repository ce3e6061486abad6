"""
Credential state machine.

Five optional fields make up a session. Fields depend on each other: an
access token without a device id or refresh token is meaningless, and a
user key is only trusted alongside a complete token set and a user id.
Raw values are kept as set, and after every mutation a validated snapshot
is recomputed that exposes only the fields whose co-fields are present.
Getters and `save()` read the snapshot, never the raw values.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Protocol

log = logging.getLogger(__name__)

FIELDS = ("device_id", "access_token", "refresh_token", "user_id", "user_key")


class SessionStore(Protocol):
    """Reads and writes the persisted session fields."""

    def load_credentials(self) -> dict[str, str | None]: ...

    def save_credentials(self, credentials: dict[str, str | None]) -> None: ...


@dataclass(frozen=True)
class CredentialSnapshot:
    """The observable view of a credential state."""

    device_id: str | None = None
    access_token: str | None = None
    refresh_token: str | None = None
    user_id: str | None = None
    user_key: str | None = None

    @classmethod
    def validate(
        cls,
        device_id: str | None,
        access_token: str | None,
        refresh_token: str | None,
        user_id: str | None,
        user_key: str | None,
    ) -> "CredentialSnapshot":
        has_tokens = bool(device_id and access_token and refresh_token)
        return cls(
            device_id=device_id,
            access_token=access_token if has_tokens else None,
            refresh_token=refresh_token if has_tokens else None,
            user_id=user_id if has_tokens and user_key else None,
            user_key=user_key if has_tokens and user_id else None,
        )

    def as_dict(self) -> dict[str, str | None]:
        return asdict(self)


def _non_empty(value: str | None) -> str | None:
    return value if value else None


class CredentialState:
    """In-memory session credentials, persisted through a SessionStore."""

    def __init__(self, store: SessionStore | None = None, **fields: str | None):
        unknown = set(fields) - set(FIELDS)
        if unknown:
            raise TypeError(f"Unknown credential fields: {', '.join(sorted(unknown))}")
        self._store = store
        self._device_id = _non_empty(fields.get("device_id"))
        self._access_token = _non_empty(fields.get("access_token"))
        self._refresh_token = _non_empty(fields.get("refresh_token"))
        self._user_id = _non_empty(fields.get("user_id"))
        self._user_key = _non_empty(fields.get("user_key"))
        self._revalidate()

    @classmethod
    def from_store(cls, store: SessionStore) -> "CredentialState":
        """Builds the state from the fields the store has persisted."""
        loaded = store.load_credentials()
        return cls(store, **{name: loaded.get(name) for name in FIELDS})

    def _revalidate(self) -> None:
        self._snapshot = CredentialSnapshot.validate(
            self._device_id,
            self._access_token,
            self._refresh_token,
            self._user_id,
            self._user_key,
        )

    # Guarded getters

    def device_id(self) -> str | None:
        return self._snapshot.device_id

    def access_token(self) -> str | None:
        return self._snapshot.access_token

    def refresh_token(self) -> str | None:
        return self._snapshot.refresh_token

    def user_id(self) -> str | None:
        return self._snapshot.user_id

    def user_key(self) -> str | None:
        return self._snapshot.user_key

    def snapshot(self) -> CredentialSnapshot:
        return self._snapshot

    # Mutations

    def set_device_id(self, device_id: str) -> None:
        """Switches to a new device identity, dropping the whole session."""
        self._device_id = _non_empty(device_id)
        self._access_token = None
        self._refresh_token = None
        self._user_key = None
        self._user_id = None
        self._revalidate()

    def set_user_key(self, user_key: str) -> None:
        self._user_key = _non_empty(user_key)
        self._user_id = None
        self._revalidate()

    def set_user_id(self, user_id: str) -> None:
        self._user_id = _non_empty(user_id)
        self._revalidate()

    def refresh_tokens(self, access_token: str, refresh_token: str) -> None:
        """Replaces both tokens, keeping the user identity. Empty values are ignored."""
        if not access_token or not refresh_token:
            return
        self._access_token = access_token
        self._refresh_token = refresh_token
        self._revalidate()

    def set_tokens(self, access_token: str, refresh_token: str) -> None:
        """Replaces both tokens and forgets the user identity. Empty values are ignored."""
        if not access_token or not refresh_token:
            return
        self._access_token = access_token
        self._refresh_token = refresh_token
        self._user_key = None
        self._user_id = None
        self._revalidate()

    def clear_tokens(self) -> None:
        self._access_token = None
        self._refresh_token = None
        self._revalidate()

    # Queries

    def is_auth_set(self) -> bool:
        s = self._snapshot
        return bool(s.access_token and s.device_id and s.refresh_token)

    def is_logged_in(self) -> bool:
        s = self._snapshot
        return self.is_auth_set() and bool(s.user_key and s.user_id)

    def save(self) -> None:
        """
        Persists the validated snapshot.

        Raises:
            SessionStoreError: If the store cannot write the session.
        """
        if self._store is None:
            log.debug("No session store configured, not saving credentials")
            return
        self._store.save_credentials(self._snapshot.as_dict())
