"""Tests for the trigger endpoint's caller key."""

import pytest
from starlette.requests import Request

from rlly.core.config import settings
from rlly.core.rate_limit import trigger_caller_key


def _request(peer: str, forwarded: str | None = None) -> Request:
    headers = [(b"x-forwarded-for", forwarded.encode())] if forwarded is not None else []
    return Request({"type": "http", "headers": headers, "client": (peer, 51234)})


class TestTriggerCallerKey:
    """trigger_caller_key."""

    def test_one_proxy_uses_last_forwarded_entry(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """A spoofed left-most entry does not change the key."""
        monkeypatch.setattr(settings, "trusted_proxy_hops", 1)
        request = _request("10.0.0.5", "6.6.6.6, 172.18.0.4")
        assert trigger_caller_key(request) == "172.18.0.4"

    def test_two_proxies(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "trusted_proxy_hops", 2)
        request = _request("10.0.0.5", "6.6.6.6, 172.18.0.4, 10.0.0.9")
        assert trigger_caller_key(request) == "172.18.0.4"

    def test_no_trusted_proxies_ignores_header(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """With no proxy in front the socket peer is the caller."""
        monkeypatch.setattr(settings, "trusted_proxy_hops", 0)
        request = _request("10.0.0.5", "6.6.6.6")
        assert trigger_caller_key(request) == "10.0.0.5"

    def test_missing_header_falls_back_to_peer(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "trusted_proxy_hops", 1)
        assert trigger_caller_key(_request("10.0.0.5")) == "10.0.0.5"

    def test_short_chain_uses_first_entry(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "trusted_proxy_hops", 3)
        assert trigger_caller_key(_request("10.0.0.5", "172.18.0.4")) == "172.18.0.4"
