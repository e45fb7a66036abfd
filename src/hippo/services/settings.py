"""User settings for the assistant and their on-disk persistence.

Settings live in ``~/.hippo/settings.json``. The API key never touches that
file in clear text: it is stored as ``api_key_ciphertext`` and sealed with a
Fernet key kept next to the settings file. ``HIPPO_*`` environment variables
override whatever was loaded.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, Mapping

from cryptography.fernet import Fernet, InvalidToken

__all__ = [
    "Settings",
    "SettingsStore",
    "SecretVault",
    "redact_secret",
]

LOGGER = logging.getLogger(__name__)

SETTINGS_VERSION = 1

_SETTINGS_DIR = Path.home() / ".hippo"
_CIPHERTEXT_KEY = "api_key_ciphertext"
_TOKEN_PREFIX = "fernet:"
_TRUTHY = frozenset({"1", "true", "yes", "on", "debug"})


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in _TRUTHY


# Environment variable -> (field, parser).
_ENV_OVERRIDES: Mapping[str, tuple[str, Callable[[str], Any]]] = {
    "HIPPO_API_KEY": ("api_key", str),
    "HIPPO_BASE_URL": ("base_url", str),
    "HIPPO_MODEL": ("model", str),
    "HIPPO_CHATS_DIR": ("chats_dir", str),
    "HIPPO_DEBUG_LOGGING": ("debug_logging", _parse_bool),
    "HIPPO_REQUEST_TIMEOUT": ("request_timeout", float),
    "HIPPO_TEMPERATURE": ("temperature", float),
    "HIPPO_MAX_ROUND_TRIPS": ("max_round_trips", int),
}


@dataclass(slots=True)
class Settings:
    """Everything a host needs to build the model client and orchestrator.

    The loop-guard limits (``max_round_trips``, ``max_consecutive_errors``,
    ``signature_window``) feed :meth:`LoopGuardConfig.from_settings`; the
    connection fields feed :meth:`ClientSettings.from_settings`.
    """

    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = "gpt-4o-mini"
    temperature: float = 0.2
    organization: str | None = None
    request_timeout: float = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    max_round_trips: int = 12
    max_consecutive_errors: int = 3
    signature_window: int = 8
    chats_dir: str | None = None
    default_headers: dict[str, str] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)
    debug_logging: bool = False

    def resolved_chats_dir(self, base: Path | None = None) -> Path:
        """Directory holding saved chat transcripts."""

        if self.chats_dir:
            return Path(self.chats_dir).expanduser()
        return (base or _SETTINGS_DIR) / "chats"


_FIELD_NAMES = frozenset(item.name for item in fields(Settings))


class SettingsStore:
    """Loads and saves :class:`Settings` as a JSON document."""

    def __init__(self, path: Path | None = None, *, vault: SecretVault | None = None) -> None:
        self._path = path or _SETTINGS_DIR / "settings.json"
        self._vault = vault or SecretVault(key_path=self._path.with_suffix(".key"))

    @property
    def path(self) -> Path:
        return self._path

    @property
    def vault(self) -> SecretVault:
        return self._vault

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        """Return stored settings with ``overrides`` and then the environment applied.

        A missing, unreadable or malformed file yields defaults. Files written
        by an older version (including ones holding a plaintext key) are
        rewritten in the current format.
        """

        document = self._read()
        settings = self._from_document(document) if document else Settings()

        if document and (document.get("version") != SETTINGS_VERSION or "api_key" in document):
            LOGGER.info("Upgrading settings file %s to version %d", self._path, SETTINGS_VERSION)
            try:
                self.save(settings)
            except OSError as exc:
                LOGGER.warning("Could not rewrite settings file %s: %s", self._path, exc)

        if overrides:
            settings = _merge(settings, overrides, source="caller")
        return _merge(settings, self._environment(), source="environment")

    def save(self, settings: Settings) -> Path:
        """Write ``settings`` atomically and return the file path."""

        document = asdict(settings)
        api_key = document.pop("api_key") or ""
        if api_key:
            document[_CIPHERTEXT_KEY] = self._vault.encrypt(api_key)
        document["version"] = SETTINGS_VERSION

        self._path.parent.mkdir(parents=True, exist_ok=True)
        staging = self._path.with_suffix(".tmp")
        staging.write_text(json.dumps(document, indent=2, sort_keys=True), encoding="utf-8")
        staging.replace(self._path)
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _read(self) -> Dict[str, Any]:
        try:
            document = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as exc:
            LOGGER.warning("Ignoring unreadable settings file %s: %s", self._path, exc)
            return {}
        if not isinstance(document, dict):
            LOGGER.warning("Ignoring settings file %s: expected a JSON object", self._path)
            return {}
        return document

    def _from_document(self, document: Mapping[str, Any]) -> Settings:
        values = {key: value for key, value in document.items() if key in _FIELD_NAMES}
        values["api_key"] = self._api_key_from(document)
        for name in ("metadata", "default_headers"):
            if name in values and not isinstance(values[name], Mapping):
                LOGGER.debug("Dropping non-object %s from settings file", name)
                del values[name]
        try:
            return Settings(**values)
        except TypeError as exc:
            LOGGER.warning("Settings file %s has unexpected values: %s", self._path, exc)
            return Settings(api_key=values["api_key"])

    def _api_key_from(self, document: Mapping[str, Any]) -> str:
        ciphertext = document.get(_CIPHERTEXT_KEY)
        if ciphertext:
            try:
                return self._vault.decrypt(ciphertext)
            except ValueError as exc:
                LOGGER.warning("Stored API key could not be decrypted: %s", exc)
                return ""
        legacy = document.get("api_key")
        if legacy:
            LOGGER.info("Found a plaintext API key; it will be re-saved encrypted")
            return str(legacy)
        return ""

    @staticmethod
    def _environment() -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        for variable, (name, parse) in _ENV_OVERRIDES.items():
            raw = os.environ.get(variable)
            if raw is None:
                continue
            try:
                values[name] = parse(raw)
            except ValueError:
                LOGGER.warning("Ignoring %s=%r: not a valid %s", variable, raw, parse.__name__)
        return values


def _merge(settings: Settings, overrides: Mapping[str, Any], *, source: str) -> Settings:
    changes = {
        key: value for key, value in overrides.items() if key in _FIELD_NAMES and value is not None
    }
    if isinstance(changes.get("metadata"), Mapping):
        changes["metadata"] = {**settings.metadata, **changes["metadata"]}
    if not changes:
        return settings
    LOGGER.debug("Applying %s overrides: %s", source, ", ".join(sorted(changes)))
    return replace(settings, **changes)


class SecretVault:
    """Seals short secrets with a Fernet key stored in ``key_path``.

    The key file is created on first use with owner-only permissions.
    """

    def __init__(self, *, key_path: Path | None = None) -> None:
        self._key_path = key_path or _SETTINGS_DIR / "settings.key"
        self._fernet: Fernet | None = None

    @property
    def key_path(self) -> Path:
        return self._key_path

    def encrypt(self, secret: str) -> str:
        if not secret:
            return ""
        token = self._cipher().encrypt(secret.encode("utf-8"))
        return _TOKEN_PREFIX + token.decode("ascii")

    def decrypt(self, token: str | None) -> str:
        """Reverse :meth:`encrypt`; raises ``ValueError`` for foreign or damaged tokens."""

        if not token:
            return ""
        if token.startswith(_TOKEN_PREFIX):
            token = token[len(_TOKEN_PREFIX) :]
        elif ":" in token:
            raise ValueError(f"Unsupported secret format {token.split(':', 1)[0]!r}")
        try:
            return self._cipher().decrypt(token.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeEncodeError) as exc:
            raise ValueError("Secret cannot be decrypted with this key") from exc

    def _cipher(self) -> Fernet:
        if self._fernet is None:
            self._fernet = Fernet(self._read_or_create_key())
        return self._fernet

    def _read_or_create_key(self) -> bytes:
        if self._key_path.exists():
            return self._key_path.read_bytes().strip()
        self._key_path.parent.mkdir(parents=True, exist_ok=True)
        key = Fernet.generate_key()
        staging = self._key_path.with_suffix(".tmp")
        staging.write_bytes(key)
        if os.name != "nt":  # pragma: no cover - depends on OS
            staging.chmod(0o600)
        staging.replace(self._key_path)
        LOGGER.debug("Created secret key %s", self._key_path)
        return key


def redact_secret(value: str) -> str:
    """Mask all but the first and last two characters of ``value``."""

    stripped = (value or "").strip()
    if len(stripped) <= 4:
        return "*" * len(stripped)
    return stripped[:2] + "*" * (len(stripped) - 4) + stripped[-2:]
