"""
Request Provenance — IP address and user agent for audit entries.
"""
from typing import Optional, Tuple

from fastapi import Request


def request_provenance(request: Request) -> Tuple[Optional[str], Optional[str]]:
    """Return ``(ip_address, user_agent)`` for a request.

    The first hop of ``X-Forwarded-For`` wins over the socket peer. The user
    agent is truncated to 256 characters.
    """
    forwarded = request.headers.get("x-forwarded-for", "")
    ip = forwarded.split(",")[0].strip() if forwarded else None
    if not ip:
        ip = request.client.host if request.client else None

    user_agent = request.headers.get("user-agent")
    return ip, user_agent[:256] if user_agent else None
