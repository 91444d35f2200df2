from __future__ import annotations

import asyncio
from typing import List

import pytest

from fixtures import PUBLIC_IP, make_resolver
from services.preview_errors import ErrorKind, PreviewError
from services.ssrf_guard import SSRFGuard, is_blocked_address


@pytest.mark.parametrize(
    "ip",
    [
        "10.0.0.5",
        "172.16.0.1",
        "172.31.255.255",
        "192.168.1.10",
        "127.0.0.1",
        "127.8.8.8",
        "169.254.169.254",
        "0.0.0.0",
        "::1",
        "::",
        "fc00::1",
        "fd12:3456::1",
        "fe80::1%eth0",
        "::ffff:127.0.0.1",
        "::ffff:10.1.2.3",
        "not-an-ip",
    ],
)
def test_is_blocked_address_blocks_private_ranges(ip):
    assert is_blocked_address(ip) is True


@pytest.mark.parametrize(
    "ip",
    [
        PUBLIC_IP,
        "8.8.8.8",
        "172.32.0.1",
        "172.15.255.255",
        "2606:2800:220:1:248:1893:25c8:1946",
        "::ffff:8.8.8.8",
    ],
)
def test_is_blocked_address_allows_public_addresses(ip):
    assert is_blocked_address(ip) is False


@pytest.mark.asyncio
@pytest.mark.parametrize("private_ip", ["127.0.0.1", "10.0.0.5"])
async def test_check_blocks_host_resolving_to_private_ip(private_ip):
    guard = SSRFGuard(resolver=make_resolver({"internal.test": [private_ip]}))

    with pytest.raises(PreviewError) as exc_info:
        await guard.check("https://internal.test/product")

    assert exc_info.value.kind is ErrorKind.BLOCKED_DESTINATION


@pytest.mark.asyncio
async def test_check_blocks_when_any_address_is_private():
    guard = SSRFGuard(resolver=make_resolver({"mixed.test": [PUBLIC_IP, "fd00::1"]}))

    with pytest.raises(PreviewError) as exc_info:
        await guard.check("https://mixed.test/")

    assert exc_info.value.kind is ErrorKind.BLOCKED_DESTINATION


@pytest.mark.asyncio
async def test_check_returns_addresses_for_public_host():
    guard = SSRFGuard(resolver=make_resolver())
    assert await guard.check("https://example.com/item") == [PUBLIC_IP]


@pytest.mark.asyncio
async def test_unknown_host_is_resolution_failure_not_block():
    guard = SSRFGuard(resolver=make_resolver())

    with pytest.raises(PreviewError) as exc_info:
        await guard.check("https://no-such-host.invalid/")

    assert exc_info.value.kind is ErrorKind.RESOLUTION_FAILED
    assert not exc_info.value.is_terminal


@pytest.mark.asyncio
async def test_slow_dns_counts_as_resolution_failure():
    async def slow_resolver(host: str) -> List[str]:
        await asyncio.sleep(1)
        return [PUBLIC_IP]

    guard = SSRFGuard(resolver=slow_resolver, timeout_s=0.01)

    with pytest.raises(PreviewError) as exc_info:
        await guard.check("https://example.com/")

    assert exc_info.value.kind is ErrorKind.RESOLUTION_FAILED


@pytest.mark.asyncio
async def test_check_resolves_again_every_time():
    calls: List[str] = []
    guard = SSRFGuard(resolver=make_resolver(calls=calls))

    await guard.check("https://example.com/a")
    await guard.check("https://example.com/b")

    assert calls == ["example.com", "example.com"]


@pytest.mark.asyncio
async def test_ip_literal_host_is_checked():
    guard = SSRFGuard(resolver=make_resolver({"127.0.0.1": ["127.0.0.1"]}))

    with pytest.raises(PreviewError) as exc_info:
        await guard.check("http://127.0.0.1:8080/admin")

    assert exc_info.value.kind is ErrorKind.BLOCKED_DESTINATION


@pytest.mark.asyncio
async def test_url_without_host_is_invalid():
    guard = SSRFGuard(resolver=make_resolver())

    with pytest.raises(PreviewError) as exc_info:
        await guard.check("https:///path-only")

    assert exc_info.value.kind is ErrorKind.INVALID_URL
