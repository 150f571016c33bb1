"""Author identity normalization."""

import logging
from collections.abc import Iterable
from typing import Optional

from ..config.schema import AuthorMappingConfig
from ..errors import ConfigurationError
from ..models.records import CanonicalIdentity, Identity

logger = logging.getLogger(__name__)


class AuthorNormalizer:
    """Map raw (name, email) identities onto canonical ones.

    WHY: The same person commits under several names and addresses (work
    laptop, personal machine, typo in ``user.name``). Configured mappings fold
    them onto one identity so per-author queries count them together.

    Matching is exact on both name and email. A mapping is applied once: the
    destination identity is never looked up again, so chains of mappings do
    not compose.
    """

    def __init__(self, mappings: Optional[Iterable[AuthorMappingConfig]] = None):
        self._mappings: dict[tuple[str, str], tuple[str, str]] = {}
        for mapping in mappings or ():
            key = (mapping.source.name, mapping.source.email)
            value = (mapping.destination.name, mapping.destination.email)
            existing = self._mappings.get(key)
            if existing is not None and existing != value:
                raise ConfigurationError(
                    f"Author mapping for {key[0]} <{key[1]}> has conflicting destinations: "
                    f"{existing[0]} <{existing[1]}> and {value[0]} <{value[1]}>"
                )
            self._mappings[key] = value

        if self._mappings:
            logger.debug(f"Loaded {len(self._mappings)} author mappings")

    def __len__(self) -> int:
        return len(self._mappings)

    def normalize(self, identity: Identity) -> CanonicalIdentity:
        """Return the canonical identity for ``identity``.

        Unmapped identities pass through unchanged.
        """
        name, email = self._mappings.get(
            (identity.name, identity.email), (identity.name, identity.email)
        )
        return CanonicalIdentity(name=name, email=email)
