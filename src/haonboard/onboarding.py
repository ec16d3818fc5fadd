"""End-to-end onboarding: probe, classify, authorize, exchange.

:class:`OnboardingFlow` is the caller the probe and the authorization
controller were built for. It runs them in order:

1. :meth:`ConnectionProber.probe` the candidate address;
2. decide whether the address is internal;
3. build :class:`~haonboard.models.ConnectionSettings` with the address in
   the matching slot;
4. authorize against :attr:`ConnectionSettings.active_url`;
5. hand the code to a :class:`TokenExchangeService`, when one is given.

The token exchange itself is not part of this package.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional, Protocol

from haonboard.auth.controller import AuthorizationController
from haonboard.models import ConnectionSettings, DiscoveredInstance, OnboardingResult
from haonboard.probe.internality import Resolver, is_internal
from haonboard.probe.prober import ConnectionProber

logger = logging.getLogger(__name__)


class TokenExchangeService(Protocol):
    """Trades an authorization code for tokens at the instance."""

    async def exchange(self, code: str, settings: ConnectionSettings) -> dict[str, Any]: ...


class OnboardingFlow:
    """Connect to one Home Assistant instance.

    Args:
        prober: Runs the discovery probe.
        controller: Runs the browser authorization.
        token_exchange: Optional collaborator for the code.
        resolver: Host resolver for the internality check.
    """

    def __init__(
        self,
        prober: ConnectionProber,
        controller: AuthorizationController,
        token_exchange: Optional[TokenExchangeService] = None,
        resolver: Optional[Resolver] = None,
    ) -> None:
        self.prober = prober
        self.controller = controller
        self.token_exchange = token_exchange
        self._resolver = resolver

    async def prepare(
        self,
        base_url: str,
        announced_from: Iterable[str] = (),
        internal_ssids: Iterable[str] = (),
    ) -> tuple[DiscoveredInstance, ConnectionSettings]:
        """Probe *base_url* and build its connection settings.

        Raises:
            ConnectionTestResult: If the probe fails.
        """
        instance = await self.prober.probe(base_url, announced_from=announced_from)
        internal = await is_internal(instance, self._resolver)
        logger.debug("%s is %s", base_url, "internal" if internal else "external")
        settings = ConnectionSettings.for_base_url(base_url, internal, internal_ssids)
        return instance, settings

    async def connect(
        self,
        base_url: str,
        announced_from: Iterable[str] = (),
        internal_ssids: Iterable[str] = (),
    ) -> OnboardingResult:
        """Run the whole sequence.

        Raises:
            ConnectionTestResult: If the probe fails; nothing is authorized.
            AuthorizationError: If authorization does not produce a code.
        """
        instance, settings = await self.prepare(base_url, announced_from, internal_ssids)
        code = await self.controller.authorize(settings.active_url)

        token = None
        if self.token_exchange is not None:
            token = await self.token_exchange.exchange(code, settings)
        return OnboardingResult(instance=instance, settings=settings, code=code, token=token)
