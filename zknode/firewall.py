"""Per-address request-rate and traffic limits for incoming connections."""

from __future__ import annotations

from collections import Counter
from ipaddress import IPv4Address, IPv6Address, ip_address
from typing import Union

IpAddress = Union[IPv4Address, IPv6Address]

REQUEST_WINDOW_SECS = 60
TRAFFIC_WINDOW_SECS = 900


def client_ip(client: object) -> IpAddress:
    """The IP address of a client given as an address, a ``(host, port)`` pair or a peer address."""
    ip = getattr(client, "ip", None)
    if ip is not None:
        return ip_address(ip)
    if isinstance(client, tuple):
        return ip_address(client[0])
    return ip_address(client)


class Firewall:
    """Drops clients that send too many requests or too much traffic."""

    def __init__(self, request_count_limit_per_minute: int, traffic_limit_per_15m: int) -> None:
        self.request_count_limit_per_minute = request_count_limit_per_minute
        self.traffic_limit_per_15m = traffic_limit_per_15m
        self._request_count_last_reset = 0
        self._request_count: Counter[IpAddress] = Counter()
        self._traffic_last_reset = 0
        self._traffic: Counter[IpAddress] = Counter()

    def refresh(self, now: int) -> None:
        """Reset the counters whose window has passed."""
        if now - self._request_count_last_reset > REQUEST_WINDOW_SECS:
            self._request_count.clear()
            self._request_count_last_reset = now
        if now - self._traffic_last_reset > TRAFFIC_WINDOW_SECS:
            self._traffic.clear()
            self._traffic_last_reset = now

    def add_traffic(self, ip: object, amount: int) -> None:
        self._traffic[client_ip(ip)] += amount

    def incoming_permitted(self, client: object) -> bool:
        """Whether a request from ``client`` may be served; counts it if so."""
        ip = client_ip(client)
        if ip.is_loopback:
            return True
        if self._traffic[ip] > self.traffic_limit_per_15m:
            return False
        if self._request_count[ip] > self.request_count_limit_per_minute:
            return False
        self._request_count[ip] += 1
        return True