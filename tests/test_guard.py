from __future__ import annotations

import pytest

from app.services.preview.guard import is_private_host


@pytest.mark.parametrize(
    "host",
    [
        "127.0.0.1",
        "10.1.2.3",
        "192.168.1.1",
        "169.254.1.1",
        "172.16.0.1",
        "172.31.255.255",
        "0.0.0.0",
        "localhost",
        "LOCALHOST",
        "localhost.",
        "api.localhost",
        "::1",
        "[::1]",
        "fc00::1",
        "fd12:3456::1",
        "::ffff:127.0.0.1",
        "::",
        "fe80::1",
        "[fe80::abcd:1]",
        "",
        None,
    ],
)
def test_private_hosts(host):
    assert is_private_host(host) is True


@pytest.mark.parametrize(
    "host",
    [
        "93.184.216.34",
        "example.com",
        "172.32.0.1",
        "172.15.255.255",
        "192.169.0.1",
        "2606:2800:220:1:248:1893:25c8:1946",
        "notlocalhost.com",
    ],
)
def test_public_hosts(host):
    assert is_private_host(host) is False
