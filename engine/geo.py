"""
Best-effort client lookup: ISP, location and public IP.

Independent public services are tried in order and the first one that
answers wins::

    1. jsonip.com for the IP, then ipinfo.io for ISP / location
    2. ipapi.co
    3. api.ipify.org (IP only)

If every service fails, placeholder values are returned.  The resolved
triple is cached; a locator never looks up twice.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp

from .constants import COMMON_HEADERS, DEFAULT_IP, DEFAULT_LOCATION

logger = logging.getLogger(__name__)

JSONIP_URL = "https://jsonip.com"
IPINFO_URL = "https://ipinfo.io/{ip}/json"
IPAPI_URL = "https://ipapi.co/json/"
IPIFY_URL = "https://api.ipify.org?format=json"

_LOOKUP_TIMEOUT = 5.0


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ClientInfo:
    """Who and where the client is, as far as public services can tell."""

    provider: str
    location: str
    ip: str

    @classmethod
    def placeholder(cls) -> ClientInfo:
        return cls(provider="Local Network", location=DEFAULT_LOCATION, ip=DEFAULT_IP)

    def to_dict(self) -> Dict[str, Any]:
        return {"provider": self.provider, "location": self.location, "ip": self.ip}


def parse_ipinfo(data: Dict[str, Any], ip: str) -> ClientInfo:
    # "AS13335 Cloudflare, Inc." -> "Cloudflare, Inc."
    org = str(data.get("org") or "")
    provider = " ".join(org.split(" ")[1:]) or "Your ISP"
    region = data.get("region") or data.get("country") or "Your Region"
    return ClientInfo(
        provider=provider,
        location=f"{data.get('city') or 'Your City'}, {region}",
        ip=ip,
    )


def parse_ipapi(data: Dict[str, Any]) -> Optional[ClientInfo]:
    if not data.get("ip"):
        return None
    region = data.get("region") or data.get("country_name") or "Your Region"
    return ClientInfo(
        provider=data.get("org") or data.get("asn") or "Your ISP",
        location=f"{data.get('city') or 'Your City'}, {region}",
        ip=str(data["ip"]),
    )


# ---------------------------------------------------------------------------
# Locator
# ---------------------------------------------------------------------------

_LOOKUP_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, ValueError, KeyError, TypeError)


class ClientLocator:
    """Resolve :class:`ClientInfo` once, through a chain of services."""

    def __init__(self, timeout: float = _LOOKUP_TIMEOUT) -> None:
        self.timeout = timeout
        self.info: Optional[ClientInfo] = None

    async def locate(self) -> ClientInfo:
        if self.info is not None:
            return self.info

        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(headers=COMMON_HEADERS, timeout=timeout) as session:
            for name, lookup in (
                ("jsonip", self._via_jsonip),
                ("ipapi", self._via_ipapi),
                ("ipify", self._via_ipify),
            ):
                try:
                    info = await lookup(session)
                except _LOOKUP_ERRORS as exc:
                    logger.warning("%s lookup failed: %s", name, exc)
                    continue
                if info is not None:
                    logger.info("Client resolved via %s: %s (%s)", name, info.provider, info.ip)
                    self.info = info
                    return info

        logger.warning("All client lookups failed; using placeholders")
        self.info = ClientInfo.placeholder()
        return self.info

    @staticmethod
    async def _get_json(session: aiohttp.ClientSession, url: str) -> Dict[str, Any]:
        async with session.get(url) as resp:
            resp.raise_for_status()
            data = await resp.json(content_type=None)
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected payload from {url}")
        return data

    async def _via_jsonip(self, session: aiohttp.ClientSession) -> Optional[ClientInfo]:
        ip = (await self._get_json(session, JSONIP_URL)).get("ip")
        if not ip:
            return None
        try:
            details = await self._get_json(session, IPINFO_URL.format(ip=ip))
        except _LOOKUP_ERRORS as exc:
            logger.warning("ipinfo lookup failed: %s", exc)
            return ClientInfo(provider="Your Internet Provider", location=DEFAULT_LOCATION, ip=str(ip))
        return parse_ipinfo(details, str(ip))

    async def _via_ipapi(self, session: aiohttp.ClientSession) -> Optional[ClientInfo]:
        return parse_ipapi(await self._get_json(session, IPAPI_URL))

    async def _via_ipify(self, session: aiohttp.ClientSession) -> Optional[ClientInfo]:
        ip = (await self._get_json(session, IPIFY_URL)).get("ip")
        if not ip:
            return None
        return ClientInfo(provider="Your Internet Provider", location=DEFAULT_LOCATION, ip=str(ip))
