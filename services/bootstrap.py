"""Remote command sequences run on a freshly booted server."""

from __future__ import annotations

import posixpath
import shlex
from pathlib import Path

OHAI_HINTS_PATH = "/etc/chef/ohai/hints"
PLATFORM_HINT = "openstack"


def read_public_key(path: str | Path) -> str:
    """Return the contents of a public key file without trailing whitespace."""

    return Path(path).expanduser().read_text(encoding="utf-8").strip()


def key_setup_commands(public_key: str, username: str) -> list[str]:
    """Commands authorising ``public_key`` and locking the password of ``username``."""

    return [
        "mkdir -p ~/.ssh",
        f"echo {shlex.quote(public_key.strip())} >> ~/.ssh/authorized_keys",
        f"passwd -l {shlex.quote(username)}",
    ]


def hint_commands(hints_path: str = OHAI_HINTS_PATH, platform: str = PLATFORM_HINT) -> list[str]:
    """Commands dropping an empty platform hint file for in-guest discovery tools."""

    marker = posixpath.join(hints_path, f"{platform}.json")
    return [
        f"sudo mkdir -p {shlex.quote(hints_path)}",
        f"sudo touch {shlex.quote(marker)}",
    ]
