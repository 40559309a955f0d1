"""Remote URL transport rewriting.

A push rejected over one transport (say HTTPS with no cached credentials) often
succeeds over the other (SSH with a loaded key). These helpers compute the
alternate form of a remote URL:

    https://github.com/me/notes.git  <->  git@github.com:me/notes.git

The path part, including any `.git` suffix, is carried over verbatim, so
rewriting twice returns the original string.
"""

import re
from enum import Enum

# Hosts carrying a port or credentials are left alone; their rewrite is ambiguous.
_HTTPS_RE = re.compile(r"^https://(?P<host>[^/:@\s]+)/(?P<path>\S+)$")
_SSH_RE = re.compile(r"^git@(?P<host>[^/:@\s]+):(?P<path>\S+)$")


class Transport(Enum):
    """The transport a remote URL uses."""

    HTTPS = "https"
    SSH = "ssh"
    UNSUPPORTED = "unsupported"


def classify(url: str) -> Transport:
    """Determines which transport a remote URL uses.

    Args:
        url (str): The remote URL, as printed by `git remote get-url`.

    Returns:
        Transport: HTTPS, SSH (scp-like `git@host:path`), or UNSUPPORTED.
    """
    url = url.strip()
    if _HTTPS_RE.match(url):
        return Transport.HTTPS
    if _SSH_RE.match(url):
        return Transport.SSH
    return Transport.UNSUPPORTED


def to_ssh(url: str) -> str | None:
    """Rewrites `https://<host>/<path>` as `git@<host>:<path>`."""
    match = _HTTPS_RE.match(url.strip())
    if not match:
        return None
    return f"git@{match['host']}:{match['path']}"


def to_https(url: str) -> str | None:
    """Rewrites `git@<host>:<path>` as `https://<host>/<path>`."""
    match = _SSH_RE.match(url.strip())
    if not match:
        return None
    return f"https://{match['host']}/{match['path']}"


def to_alternate(url: str) -> str | None:
    """Computes the remote URL over the other transport.

    Args:
        url (str): The current remote URL.

    Returns:
        str | None: The swapped URL, or None when the URL is neither an HTTPS
        nor an scp-like SSH URL (local paths, `ssh://`, `file://`, ...).
    """
    transport = classify(url)
    if transport is Transport.HTTPS:
        return to_ssh(url)
    if transport is Transport.SSH:
        return to_https(url)
    return None
