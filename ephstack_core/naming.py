"""Default server name generation."""

from __future__ import annotations

import logging
import os
import random
import re
import socket
import string
from abc import ABC, abstractmethod
from typing import Optional

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 63
NOLOGIN_PLACEHOLDER = "nologin"
SUFFIX_LENGTH = 7

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9]")


class EnvironmentProbe(ABC):
    """Source of the local identity used to build default names."""

    @abstractmethod
    def login(self) -> Optional[str]:
        """Return the login name of the local user, or None for non-login shells."""

    @abstractmethod
    def hostname(self) -> str:
        """Return the local host name."""


class LocalEnvironment(EnvironmentProbe):
    """Probe reading the identity of the current process."""

    def login(self) -> Optional[str]:
        try:
            return os.getlogin()
        except OSError:
            return None

    def hostname(self) -> str:
        return socket.gethostname()


def generate_name(
    base: str,
    probe: EnvironmentProbe,
    *,
    rng: random.Random | None = None,
) -> str:
    """Return ``<base>-<login>-<hostname>-<suffix>`` capped at 63 characters.

    Only ASCII letters and digits survive in the three leading components, so
    the join hyphens are the only ones in the result. When the name is too
    long the leading part is cut as a whole and the random suffix is kept.
    """

    chooser = rng or random
    suffix = "".join(chooser.choice(_SUFFIX_ALPHABET) for _ in range(SUFFIX_LENGTH))
    login = probe.login() or NOLOGIN_PLACEHOLDER
    prefix = "-".join(_sanitize(part) for part in (base, login, probe.hostname()))

    budget = MAX_NAME_LENGTH - len(suffix) - 1
    if len(prefix) > budget:
        prefix = prefix[:budget]
    # Hostnames may not start or end with a hyphen.
    prefix = prefix.strip("-")
    name = f"{prefix}-{suffix}" if prefix else suffix
    logger.debug("Generated default server name", extra={"server_name": name})
    return name


def _sanitize(value: str) -> str:
    return _UNSAFE_CHARS.sub("", value or "")
