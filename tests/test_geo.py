"""Unit tests for engine.geo -- client lookup parsing and fallbacks."""

import unittest
from unittest import mock

import aiohttp

from engine.geo import ClientInfo, ClientLocator, parse_ipapi, parse_ipinfo


class TestParsers(unittest.TestCase):
    def test_parse_ipinfo(self):
        info = parse_ipinfo(
            {"org": "AS13335 Cloudflare, Inc.", "city": "Berlin", "region": "Land Berlin"},
            "203.0.113.7",
        )
        self.assertEqual(info.provider, "Cloudflare, Inc.")
        self.assertEqual(info.location, "Berlin, Land Berlin")
        self.assertEqual(info.ip, "203.0.113.7")

    def test_parse_ipinfo_missing_fields(self):
        info = parse_ipinfo({"country": "DE"}, "203.0.113.7")
        self.assertEqual(info.provider, "Your ISP")
        self.assertEqual(info.location, "Your City, DE")

    def test_parse_ipapi(self):
        info = parse_ipapi({"ip": "198.51.100.1", "org": "Example Net", "city": "Paris",
                            "country_name": "France"})
        self.assertEqual(info, ClientInfo("Example Net", "Paris, France", "198.51.100.1"))

    def test_parse_ipapi_without_ip(self):
        self.assertIsNone(parse_ipapi({"error": True, "reason": "RateLimited"}))

    def test_placeholder(self):
        info = ClientInfo.placeholder()
        self.assertEqual(info.to_dict(), {
            "provider": "Local Network",
            "location": "Your Location",
            "ip": "Your IP",
        })


class TestLocatorChain(unittest.IsolatedAsyncioTestCase):
    async def test_first_service_wins(self):
        locator = ClientLocator()
        expected = ClientInfo("Example Net", "Berlin, BE", "203.0.113.7")
        with mock.patch.object(ClientLocator, "_via_jsonip", return_value=expected), \
                mock.patch.object(ClientLocator, "_via_ipapi") as ipapi:
            info = await locator.locate()
        self.assertEqual(info, expected)
        ipapi.assert_not_called()

    async def test_falls_through_on_errors(self):
        locator = ClientLocator()
        expected = ClientInfo("Your Internet Provider", "Your Location", "198.51.100.1")
        with mock.patch.object(ClientLocator, "_via_jsonip",
                               side_effect=aiohttp.ClientConnectionError("down")), \
                mock.patch.object(ClientLocator, "_via_ipapi", return_value=None), \
                mock.patch.object(ClientLocator, "_via_ipify", return_value=expected):
            with self.assertLogs("engine.geo", level="WARNING"):
                info = await locator.locate()
        self.assertEqual(info, expected)
        self.assertEqual(locator.info, expected)

    async def test_all_fail_gives_placeholder(self):
        locator = ClientLocator()
        with mock.patch.object(ClientLocator, "_via_jsonip", side_effect=ValueError("bad")), \
                mock.patch.object(ClientLocator, "_via_ipapi",
                                  side_effect=aiohttp.ClientConnectionError("down")), \
                mock.patch.object(ClientLocator, "_via_ipify", side_effect=KeyError("ip")):
            with self.assertLogs("engine.geo", level="WARNING"):
                info = await locator.locate()
        self.assertEqual(info, ClientInfo.placeholder())

    async def test_cached_after_first_lookup(self):
        locator = ClientLocator()
        cached = ClientInfo("Example Net", "Berlin, BE", "203.0.113.7")
        locator.info = cached
        with mock.patch.object(ClientLocator, "_via_jsonip") as jsonip:
            self.assertIs(await locator.locate(), cached)
        jsonip.assert_not_called()


if __name__ == "__main__":
    unittest.main()
