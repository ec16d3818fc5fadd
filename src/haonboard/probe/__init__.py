"""Pre-authorization checks against a candidate instance.

- :class:`ConnectionProber` -- the discovery probe.
- :func:`classify` -- the trust gate for TLS/HTTP authentication challenges.
- :func:`is_internal` -- private-network locality check.

Typical usage::

    from haonboard.probe import ConnectionProber, is_internal

    instance = await ConnectionProber().probe(base_url)
    internal = await is_internal(instance)
"""

from haonboard.probe.internality import is_internal, is_private_address
from haonboard.probe.prober import ConnectionProber, discovery_url
from haonboard.probe.trust import ChallengeDecision, ChallengeMethod, classify

__all__ = [
    "ChallengeDecision",
    "ChallengeMethod",
    "ConnectionProber",
    "classify",
    "discovery_url",
    "is_internal",
    "is_private_address",
]
