"""
Credential / Group state container for the primary device.

Every mutation goes through a command method. The method persists the new
state, notifies subscribers and returns a StoreChange describing what
happened. Subscribers (the sync coordinator, a UI shell) react to the change
event; nothing observes the store's attributes directly.

Collections are replaced wholesale on every mutation, so a reader on another
thread (the push timer) always sees one consistent list.
"""

import json
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from otp_engine import otpauth_uri
from otp_engine.exceptions import InvalidSecret
from otp_engine.models import Credential, Group, OTPType
from otp_engine.otp_core import generate_hotp, generate_totp
from secretstore.blob_store import BlobStore

logger = logging.getLogger(__name__)

CREDENTIALS_KEY = "credentials"
GROUPS_KEY = "groups"

DEFAULT_GROUPS = (
    ("Personal", "4A90E2"),   # blue
    ("Work", "7ED321"),       # green
    ("Financial", "F5A623"),  # orange
)

# OTP parameters of a credential; update() rejects any change to them
FIXED_FIELDS = ("kind", "secret", "digits", "algorithm", "period", "counter")


class CredentialNotFound(KeyError):
    """No credential with the requested id."""
    pass


class GroupNotFound(KeyError):
    """No group with the requested id."""
    pass


class ChangeKind(str, Enum):
    CREDENTIAL_ADDED = "credential_added"
    CREDENTIAL_UPDATED = "credential_updated"
    CREDENTIAL_DELETED = "credential_deleted"
    COUNTER_ADVANCED = "counter_advanced"
    VISIBILITY_CHANGED = "visibility_changed"
    GROUP_ADDED = "group_added"
    GROUP_UPDATED = "group_updated"
    GROUP_DELETED = "group_deleted"


@dataclass(frozen=True)
class StoreChange:
    kind: ChangeKind
    credential_id: Optional[str] = None
    group_id: Optional[str] = None


Subscriber = Callable[[StoreChange], None]


class CredentialStore:
    def __init__(self, blob_store: BlobStore, seed_default_groups: bool = True):
        self._blob_store = blob_store
        self._credentials: List[Credential] = []
        self._groups: List[Group] = []
        self._subscribers: List[Subscriber] = []

        self._groups = self._load(GROUPS_KEY, Group.from_record)
        self._credentials = self._load(CREDENTIALS_KEY, Credential.from_record)

        if not self._groups and seed_default_groups:
            self._groups = [Group(name=name, color_tag=color) for name, color in DEFAULT_GROUPS]
            self._save_groups()

    # --- Queries -------------------------------------------------------------
    @property
    def credentials(self) -> Tuple[Credential, ...]:
        """All credentials in insertion order."""
        return tuple(self._credentials)

    @property
    def groups(self) -> Tuple[Group, ...]:
        return tuple(self._groups)

    def get(self, credential_id: str) -> Optional[Credential]:
        for credential in self._credentials:
            if credential.id == credential_id:
                return credential
        return None

    def get_group(self, group_id: Optional[str]) -> Optional[Group]:
        if group_id is None:
            return None
        for group in self._groups:
            if group.id == group_id:
                return group
        return None

    def group_for(self, credential: Credential) -> Optional[Group]:
        return self.get_group(credential.group_id)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a change listener; returns a function that unregisters it."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    # --- Credential commands -------------------------------------------------
    def add(self, credential: Credential) -> StoreChange:
        """
        Append a credential.

        Raises:
            ValueError: duplicate id or unknown group_id
            InvalidSecret: the secret does not produce a code
        """
        if self.get(credential.id) is not None:
            raise ValueError(f"credential {credential.id} already exists")
        self._check_group_ref(credential)
        self._check_generates(credential)
        self._credentials = self._credentials + [credential]
        logger.info("Added %s credential %s (%s)", credential.kind.value, credential.id, credential.name)
        return self._commit(StoreChange(ChangeKind.CREDENTIAL_ADDED, credential_id=credential.id))

    def add_from_uri(self, uri: str, name: Optional[str] = None, **ui_fields) -> Credential:
        """
        Parse an otpauth:// URI (typed in or decoded from a QR code) and add it.

        Raises:
            OTPAuthParseError: the URI is rejected; nothing is added
            InvalidSecret: the secret does not produce a code
        """
        credential = otpauth_uri.parse(uri).to_credential(name=name, **ui_fields)
        self.add(credential)
        return credential

    def update(self, credential: Credential) -> StoreChange:
        """
        Replace the credential with the same id.

        Only name, group_id and secondary_visible may change. The OTP fields
        are fixed at creation, and the HOTP counter moves only through
        increment_hotp_counter().

        Raises:
            CredentialNotFound: no credential with that id
            ValueError: an OTP field differs or group_id is unknown
        """
        current = self._require(credential.id)
        changed = [name for name in FIXED_FIELDS if getattr(credential, name) != getattr(current, name)]
        if changed:
            raise ValueError(f"cannot change {', '.join(changed)} after creation")
        self._check_group_ref(credential)
        self._replace(credential)
        return self._commit(StoreChange(ChangeKind.CREDENTIAL_UPDATED, credential_id=credential.id))

    def delete(self, credential_id: str) -> StoreChange:
        self._require(credential_id)
        self._credentials = [c for c in self._credentials if c.id != credential_id]
        logger.info("Deleted credential %s", credential_id)
        return self._commit(StoreChange(ChangeKind.CREDENTIAL_DELETED, credential_id=credential_id))

    def increment_hotp_counter(self, credential_id: str) -> Optional[StoreChange]:
        """
        Advance an HOTP counter by exactly 1.

        Unknown ids and TOTP credentials are ignored (None is returned); the
        request may come from the secondary, which has no error channel.
        """
        credential = self.get(credential_id)
        if credential is None or credential.kind is not OTPType.HOTP:
            logger.debug("Ignoring counter advance for %s: not an HOTP credential", credential_id)
            return None
        self._replace(replace(credential, counter=credential.counter + 1))
        logger.info("Advanced HOTP counter of %s to %d", credential_id, credential.counter + 1)
        return self._commit(StoreChange(ChangeKind.COUNTER_ADVANCED, credential_id=credential_id))

    def set_secondary_visible(self, credential_id: str, visible: bool) -> StoreChange:
        credential = self._require(credential_id)
        self._replace(replace(credential, secondary_visible=visible))
        return self._commit(StoreChange(ChangeKind.VISIBILITY_CHANGED, credential_id=credential_id))

    def toggle_secondary_visible(self, credential_id: str) -> StoreChange:
        credential = self._require(credential_id)
        return self.set_secondary_visible(credential_id, not credential.secondary_visible)

    # --- Group commands ------------------------------------------------------
    def add_group(self, group: Group) -> StoreChange:
        if self.get_group(group.id) is not None:
            raise ValueError(f"group {group.id} already exists")
        self._groups = self._groups + [group]
        return self._commit(StoreChange(ChangeKind.GROUP_ADDED, group_id=group.id), groups=True)

    def update_group(self, group: Group) -> StoreChange:
        if self.get_group(group.id) is None:
            raise GroupNotFound(group.id)
        self._groups = [group if g.id == group.id else g for g in self._groups]
        return self._commit(StoreChange(ChangeKind.GROUP_UPDATED, group_id=group.id), groups=True)

    def delete_group(self, group_id: str) -> StoreChange:
        """Remove a group and clear it from every credential that referenced it."""
        if self.get_group(group_id) is None:
            raise GroupNotFound(group_id)
        self._credentials = [
            replace(c, group_id=None) if c.group_id == group_id else c
            for c in self._credentials
        ]
        self._groups = [g for g in self._groups if g.id != group_id]
        return self._commit(
            StoreChange(ChangeKind.GROUP_DELETED, group_id=group_id),
            credentials=True,
            groups=True,
        )

    # --- Internals -----------------------------------------------------------
    def _require(self, credential_id: str) -> Credential:
        credential = self.get(credential_id)
        if credential is None:
            raise CredentialNotFound(credential_id)
        return credential

    def _replace(self, credential: Credential) -> None:
        self._credentials = [credential if c.id == credential.id else c for c in self._credentials]

    def _check_group_ref(self, credential: Credential) -> None:
        if credential.group_id is not None and self.get_group(credential.group_id) is None:
            raise ValueError(f"unknown group {credential.group_id}")

    @staticmethod
    def _check_generates(credential: Credential) -> None:
        if credential.kind is OTPType.TOTP:
            code = generate_totp(credential)
        else:
            code = generate_hotp(credential)
        if code is None:
            raise InvalidSecret("Invalid secret key. Please check and try again.")

    def _commit(self, change: StoreChange, credentials: Optional[bool] = None, groups: bool = False) -> StoreChange:
        if credentials is None:
            credentials = not groups
        if credentials:
            self._save_credentials()
        if groups:
            self._save_groups()
        for callback in list(self._subscribers):
            try:
                callback(change)
            except Exception:
                logger.exception("Store subscriber failed on %s", change.kind.value)
        return change

    def _save_credentials(self) -> None:
        self._save(CREDENTIALS_KEY, [c.to_record() for c in self._credentials])

    def _save_groups(self) -> None:
        self._save(GROUPS_KEY, [g.to_record() for g in self._groups])

    def _save(self, key: str, records: Sequence[dict]) -> None:
        self._blob_store.set(key, json.dumps(records).encode("utf-8"))

    def _load(self, key: str, from_record):
        blob = self._blob_store.get(key)
        if blob is None:
            return []
        try:
            return [from_record(record) for record in json.loads(blob)]
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Stored %s are unreadable, starting empty: %s", key, e)
            return []
