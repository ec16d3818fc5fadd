"""Canonical Pydantic models shared across all haonboard modules.

This is the single source of truth for data shapes in the project. Every other
module imports from here rather than defining its own models. The models fall
into two groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`RequestConfig`, :class:`RelayConfig`, :class:`OutputConfig`, and
    :class:`GlobalConfig`.

**Onboarding models** -- produced and consumed while connecting to an
instance:
    :class:`BuildVariant`, :class:`AuthorizationRequest`,
    :class:`DiscoveredInstance`, :class:`ConnectionSettings`, and
    :class:`OnboardingResult`.

All models use Pydantic v2. Values handed across component boundaries
(:class:`AuthorizationRequest`, :class:`DiscoveredInstance`) are frozen.
"""

from __future__ import annotations

import enum
from typing import Any, Iterable, Literal, Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator


# --- Build variant / authorization request ---


class BuildVariant(str, enum.Enum):
    """Release channel the client identifies itself as.

    Each variant owns a distinct OAuth2 ``client_id`` and redirect scheme, so
    production, beta, and development installs never intercept each other's
    callbacks.
    """

    PRODUCTION = "production"
    BETA = "beta"
    DEVELOPMENT = "development"


_VARIANT_CLIENTS: dict[BuildVariant, tuple[str, str]] = {
    BuildVariant.PRODUCTION: (
        "https://home-assistant.io/iOS",
        "homeassistant://auth-callback",
    ),
    BuildVariant.BETA: (
        "https://home-assistant.io/iOS/beta-auth",
        "homeassistant-beta://auth-callback",
    ),
    BuildVariant.DEVELOPMENT: (
        "https://home-assistant.io/iOS/dev-auth",
        "homeassistant-dev://auth-callback",
    ),
}


class AuthorizationRequest(BaseModel):
    """The fixed OAuth2 client identity sent to ``/auth/authorize``.

    Build one with :meth:`for_variant`; the pairing of ``client_id`` and
    ``redirect_uri`` is a pure function of the :class:`BuildVariant`.
    """

    model_config = ConfigDict(frozen=True)

    client_id: str
    redirect_uri: str
    response_type: str = "code"

    @classmethod
    def for_variant(cls, variant: BuildVariant) -> AuthorizationRequest:
        """Return the request for *variant*."""
        client_id, redirect_uri = _VARIANT_CLIENTS[BuildVariant(variant)]
        return cls(client_id=client_id, redirect_uri=redirect_uri)

    @property
    def redirect_scheme(self) -> str:
        """URL scheme of :attr:`redirect_uri` (e.g. ``homeassistant``)."""
        return urlsplit(self.redirect_uri).scheme


# --- Discovery ---


class DiscoveredInstance(BaseModel):
    """A Home Assistant instance that answered ``/api/discovery_info``.

    ``announced_from`` holds the addresses the instance was announced from
    during local discovery (zeroconf/Bonjour); the discovery body itself
    does not carry them, so the caller supplies them to the prober.
    """

    model_config = ConfigDict(frozen=True)

    base_url: str
    version: str
    announced_from: frozenset[str] = Field(default_factory=frozenset)
    location_name: Optional[str] = None
    requires_api_password: bool = False
    uuid: Optional[str] = None
    installation_type: Optional[str] = None

    @field_validator("announced_from")
    @classmethod
    def _lowercase_hosts(cls, value: frozenset[str]) -> frozenset[str]:
        # Compared against urlsplit().hostname, which is always lowercase.
        return frozenset(host.lower() for host in value)

    @classmethod
    def from_discovery(
        cls,
        data: Any,
        fallback_base_url: str,
        announced_from: Iterable[str] = (),
    ) -> DiscoveredInstance:
        """Decode a discovery response body.

        Args:
            data: The parsed JSON body.
            fallback_base_url: Used when the body's ``base_url`` is absent
                or null, as newer releases no longer report it.
            announced_from: Addresses from local discovery.

        Raises:
            ValueError: If *data* is not an object or lacks ``version``
                (``pydantic.ValidationError`` is a ``ValueError``).
        """
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
        fields = {key: data[key] for key in cls.model_fields if key in data}
        fields["base_url"] = data.get("base_url") or fallback_base_url
        fields["announced_from"] = frozenset(announced_from)
        return cls.model_validate(fields)

    @property
    def host(self) -> Optional[str]:
        """Host component of :attr:`base_url`, or ``None`` when it has none."""
        try:
            return urlsplit(self.base_url).hostname
        except ValueError:
            return None


class ConnectionSettings(BaseModel):
    """How the client reaches an instance once it is authorized.

    Exactly one of ``external_url`` / ``internal_url`` is set at creation;
    :attr:`active_url` prefers the internal one. The caller attaches webhook
    and token state later; this package never mutates settings.
    """

    external_url: Optional[str] = None
    internal_url: Optional[str] = None
    webhook_id: str = ""
    webhook_secret: Optional[str] = None
    internal_ssids: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _require_one_url(self) -> ConnectionSettings:
        if (self.external_url is None) == (self.internal_url is None):
            raise ValueError("ConnectionSettings needs exactly one of external_url or internal_url")
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def active_url(self) -> str:
        """The internal URL when present, otherwise the external one."""
        return self.internal_url or self.external_url  # type: ignore[return-value]

    @classmethod
    def for_base_url(
        cls,
        base_url: str,
        internal: bool,
        internal_ssids: Iterable[str] = (),
    ) -> ConnectionSettings:
        """Create settings with *base_url* in the slot chosen by *internal*."""
        ssids = list(internal_ssids)
        if internal:
            return cls(internal_url=base_url, internal_ssids=ssids)
        return cls(external_url=base_url, internal_ssids=ssids)


class OnboardingResult(BaseModel):
    """Everything :class:`~haonboard.onboarding.OnboardingFlow` produced."""

    instance: DiscoveredInstance
    settings: ConnectionSettings
    code: str
    token: Optional[dict[str, Any]] = None


# --- Configuration ---


class RequestConfig(BaseModel):
    """HTTP settings for the discovery probe."""

    timeout: float = Field(default=10.0, description="Probe timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify TLS certificates")


class RelayConfig(BaseModel):
    """Where the deep-link relay listens for forwarded callback URLs."""

    host: str = Field(default="127.0.0.1", description="Loopback address to bind")
    port: int = Field(default=47862, description="TCP port of the relay")


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`GlobalConfig`."""

    format: Literal["auto", "json", "plain", "rich"] = Field(
        default="auto", description="Output format used when no --json or --plain flag is given"
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/haonboard/config.json``.

    Loaded and saved by :func:`~haonboard.config.load_global_config` and
    :func:`~haonboard.config.save_global_config`. Fields here have the
    lowest precedence and can be overridden by project config, environment
    variables, or CLI flags. See :func:`~haonboard.config.resolve_config`
    for the full precedence chain.
    """

    variant: BuildVariant = BuildVariant.PRODUCTION
    session_tier: Literal["auto", "modern", "legacy", "embedded"] = Field(
        default="auto", description="Browser session backend; auto picks the best available"
    )
    minimum_version: str = Field(
        default="0.77.0", description="Oldest Home Assistant release accepted by the probe"
    )
    request: RequestConfig = Field(default_factory=RequestConfig)
    relay: RelayConfig = Field(default_factory=RelayConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
