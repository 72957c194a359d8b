"""Encrypted, file-backed cache of previously obtained tokens.

The cache file is a single JSON document nested five levels deep::

    {hostKey: {realmKey: {typeKey: {subjectKey: {expires: {
        <checksumKey>: "<uuid5 of the token>",
        <tokenKey>: "<encrypted token envelope>"
    }}}}}}

Every key is a UUIDv5 so the file never reveals hosts, usernames, or
service account ids. Several expiry-keyed versions of a token may coexist;
the one with the largest expiry is current.

Tokens are encrypted with AES-256-GCM. The key is derived with
PBKDF2-HMAC-SHA256 from the credential that obtained the token (the user's
password, or the service account's JWK), so a cache copied to another
machine, or read with a different password, is useless.

Reads need more than 30 seconds of remaining lifetime. Entries are purged
once they are more than 60 seconds past their expiry. Writes go through a
temporary file and ``os.replace``; they are not locked against other
processes, so a concurrent writer can drop an entry but never corrupt the
file.
"""

from __future__ import annotations

import json
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Union

from cryptography.exceptions import InvalidTag

from frodo_auth.config import atomic_write
from frodo_auth.exceptions import CacheError, FrodoError, TokenNotFoundError
from frodo_auth.models import BearerToken, SessionToken, TokenType, now_ms
from frodo_auth.output import get_output
from frodo_auth.protection import decrypt, encrypt

if TYPE_CHECKING:
    from frodo_auth.state import SessionContext

UUIDV5_NAMESPACE = uuid.UUID("e9a38338-21c0-4dcd-ba74-7ddeac58edbe")

READ_MARGIN_MS = 30_000
"""A cached token needs at least this much remaining lifetime to be used."""

PURGE_GRACE_MS = 60_000
"""Entries are kept this long past their expiry before being purged."""

Token = Union[SessionToken, BearerToken]


def _uuid5(value: str) -> str:
    return str(uuid.uuid5(UUIDV5_NAMESPACE, value))


CHECKSUM_KEY = _uuid5("checksum")
TOKEN_KEY = _uuid5("token")


def _canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


_TREE_DEPTH = 5
"""Nesting levels below the root: host, realm, type, subject, expiry."""


def _is_cache_tree(node: Any, depth: int = 0) -> bool:
    if not isinstance(node, dict):
        return False
    if depth == _TREE_DEPTH:
        return True
    return all(_is_cache_tree(child, depth + 1) for child in node.values())


# --- Purge ---


def purge_expired_tokens(cache: dict[str, Any], now: Optional[int] = None) -> dict[str, Any]:
    """Drop entries more than 60 s past expiry, then any branch left empty.

    *cache* is modified in place and returned.
    """
    now = now if now is not None else now_ms()
    output = get_output()
    for host_key in list(cache):
        realms = cache[host_key]
        for realm_key in list(realms):
            types = realms[realm_key]
            for type_key in list(types):
                subjects = types[type_key]
                for subject_key in list(subjects):
                    entries = subjects[subject_key]
                    for exp_key in list(entries):
                        try:
                            expires = int(exp_key)
                        except ValueError:
                            expires = 0
                        if now > expires + PURGE_GRACE_MS:
                            output.debug(
                                f"Purging expired token "
                                f"{host_key}.{realm_key}.{type_key}.{subject_key}.{exp_key}"
                            )
                            del entries[exp_key]
                    if not entries:
                        del subjects[subject_key]
                if not subjects:
                    del types[type_key]
            if not types:
                del realms[realm_key]
        if not realms:
            del cache[host_key]
    return cache


class TokenCache:
    """Token cache bound to one :class:`~frodo_auth.state.SessionContext`.

    The context supplies the host, the subject (username or service account
    id), and the credential the encryption key is derived from. They are
    read on every call, so the cache follows later changes to the context.

    Args:
        ctx: The owning session context.
        path: Cache file location. Defaults to ``ctx.token_cache_path``.
    """

    kdf_iterations = 200_000

    def __init__(self, ctx: SessionContext, path: Optional[Path] = None) -> None:
        self._ctx = ctx
        self._path = path

    @property
    def path(self) -> Path:
        return self._path if self._path is not None else self._ctx.token_cache_path

    # ------------------------------------------------------------------ #
    # File handling
    # ------------------------------------------------------------------ #

    def _load(self) -> dict[str, Any]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            raise CacheError(f"Cannot read token cache {self.path}", exc) from exc
        if not isinstance(data, dict):
            raise CacheError(f"Token cache {self.path} is not a JSON object")
        if not _is_cache_tree(data):
            raise CacheError(f"Token cache {self.path} has an unexpected structure")
        return data

    def _store(self, cache: dict[str, Any]) -> None:
        try:
            atomic_write(self.path, json.dumps(cache, indent=2), mode=0o600)
        except OSError as exc:
            raise CacheError(f"Cannot write token cache {self.path}", exc) from exc

    def init(self, now: Optional[int] = None) -> None:
        """Create an empty cache file if absent, else purge expired entries.

        Raises:
            CacheError: If the file cannot be read or written.
        """
        if not self.path.exists():
            get_output().debug(f"Creating token cache {self.path}")
            self._store({})
            return
        self._store(purge_expired_tokens(self._load(), now))

    # ------------------------------------------------------------------ #
    # Keys
    # ------------------------------------------------------------------ #

    def _subject(self, token_type: TokenType) -> Optional[str]:
        if token_type in (TokenType.USER_SESSION, TokenType.USER_BEARER):
            return self._ctx.username
        if token_type == TokenType.SA_BEARER:
            return self._ctx.service_account_id
        raise CacheError(f"Unknown token type: {token_type}")

    def _session_key(self, token_type: TokenType) -> str:
        if token_type in (TokenType.USER_SESSION, TokenType.USER_BEARER):
            secret = self._ctx.password
        elif token_type == TokenType.SA_BEARER:
            jwk = self._ctx.service_account_jwk
            secret = _canonical_json(jwk) if jwk else None
        else:
            raise CacheError(f"Unknown token type: {token_type}")
        if not secret:
            raise CacheError(f"No credential available to protect {token_type.value} tokens")
        return _uuid5(secret)

    def _key_path(self, token_type: TokenType) -> tuple[str, str, str, str]:
        token_type = _coerce_type(token_type)
        subject = self._subject(token_type)
        if not subject or not self._ctx.host:
            raise CacheError(f"No subject or host to key {token_type.value} tokens")
        return (
            str(uuid.uuid5(uuid.NAMESPACE_URL, self._ctx.host)),
            # only tokens minted in the root realm are cached
            _uuid5("/"),
            _uuid5(token_type.value),
            _uuid5(subject),
        )

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def has_token(self, token_type: TokenType, now: Optional[int] = None) -> bool:
        try:
            self.read_token(token_type, now)
        except CacheError:
            return False
        return True

    def read_token(self, token_type: TokenType, now: Optional[int] = None) -> Token:
        """Return the current cached token of *token_type*.

        Raises:
            TokenNotFoundError: If no entry has more than 30 s left.
            CacheError: If the file cannot be read or the entry decrypted.
        """
        token_type = _coerce_type(token_type)
        now = now if now is not None else now_ms()
        host_key, realm_key, type_key, subject_key = self._key_path(token_type)
        entries = (
            self._load()
            .get(host_key, {})
            .get(realm_key, {})
            .get(type_key, {})
            .get(subject_key, {})
        )
        expiries = [int(key) for key in entries if key.lstrip("-").isdigit()]
        if expiries:
            expires = max(expiries)
            if expires - now > READ_MARGIN_MS:
                get_output().debug(
                    f"Found {token_type.value} token in cache "
                    f"[expires in {(expires - now) // 1000}s]"
                )
                envelope = entries[str(expires)].get(TOKEN_KEY, "")
                try:
                    data = json.loads(decrypt(envelope, self._session_key(token_type)))
                    token = _token_class(token_type).model_validate(data)
                except (InvalidTag, ValueError, KeyError, TypeError) as exc:
                    raise CacheError(
                        f"Error decrypting {token_type.value} token from cache", exc
                    ) from exc
                token.from_cache = True
                return token
        raise TokenNotFoundError(f"No {token_type.value} tokens found in cache")

    def save_token(self, token_type: TokenType, token: Token, now: Optional[int] = None) -> bool:
        """Store *token* unless an identical one is already cached.

        Never raises: failures are logged and reported as ``False``.
        """
        try:
            token_type = _coerce_type(token_type)
            host_key, realm_key, type_key, subject_key = self._key_path(token_type)
            cache = purge_expired_tokens(self._load(), now)
            payload = _canonical_json(
                token.model_dump(mode="json", by_alias=True, exclude={"from_cache"})
            )
            checksum = _uuid5(payload)
            entries = (
                cache.setdefault(host_key, {})
                .setdefault(realm_key, {})
                .setdefault(type_key, {})
                .setdefault(subject_key, {})
            )
            if any(entry.get(CHECKSUM_KEY) == checksum for entry in entries.values()):
                get_output().debug(f"{token_type.value} token already in cache")
                return True
            entries[str(token.expires)] = {
                CHECKSUM_KEY: checksum,
                TOKEN_KEY: encrypt(
                    payload, self._session_key(token_type), self.kdf_iterations
                ),
            }
            self._store(cache)
        except (FrodoError, OSError, ValueError) as exc:
            get_output().debug(f"Error saving {token_type} token in cache: {exc}")
            return False
        get_output().debug(f"Saved {token_type.value} token in cache")
        return True

    def purge(self, now: Optional[int] = None) -> dict[str, Any]:
        """Remove expired entries and return the remaining cache document."""
        cache = purge_expired_tokens(self._load(), now)
        self._store(cache)
        return cache

    def flush(self) -> bool:
        """Empty the cache file."""
        try:
            self._store({})
        except CacheError as exc:
            get_output().debug(f"Error flushing token cache: {exc}")
            return False
        return True

    # ------------------------------------------------------------------ #
    # Typed shorthands
    # ------------------------------------------------------------------ #

    def has_user_session_token(self) -> bool:
        return self.has_token(TokenType.USER_SESSION)

    def has_user_bearer_token(self) -> bool:
        return self.has_token(TokenType.USER_BEARER)

    def has_sa_bearer_token(self) -> bool:
        return self.has_token(TokenType.SA_BEARER)

    def read_user_session_token(self) -> SessionToken:
        token = self.read_token(TokenType.USER_SESSION)
        assert isinstance(token, SessionToken)
        return token

    def read_user_bearer_token(self) -> BearerToken:
        token = self.read_token(TokenType.USER_BEARER)
        assert isinstance(token, BearerToken)
        return token

    def read_sa_bearer_token(self) -> BearerToken:
        token = self.read_token(TokenType.SA_BEARER)
        assert isinstance(token, BearerToken)
        return token

    def save_user_session_token(self, token: SessionToken) -> bool:
        return self.save_token(TokenType.USER_SESSION, token)

    def save_user_bearer_token(self, token: BearerToken) -> bool:
        return self.save_token(TokenType.USER_BEARER, token)

    def save_sa_bearer_token(self, token: BearerToken) -> bool:
        return self.save_token(TokenType.SA_BEARER, token)


def _coerce_type(token_type: Union[TokenType, str]) -> TokenType:
    try:
        return TokenType(token_type)
    except ValueError as exc:
        raise CacheError(f"Unknown token type: {token_type}", exc) from exc


def _token_class(token_type: TokenType) -> type[Token]:
    return SessionToken if token_type == TokenType.USER_SESSION else BearerToken
