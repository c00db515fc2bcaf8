from __future__ import annotations

import argparse
import ipaddress
import json
import sys
from dataclasses import asdict, dataclass
from typing import Any

import httpx


DISCOVERY_URL = "https://api.nuki.io/discover/bridges"


@dataclass(frozen=True)
class DiscoveredBridge:
    bridge_id: str
    ip: str
    port: int
    date_updated: str | None = None


def _valid_ip(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    try:
        ipaddress.ip_address(value.strip())
    except ValueError:
        return None
    return value.strip()


def parse_discovery_payload(payload: Any) -> list[DiscoveredBridge]:
    """Bridges announced by the discovery endpoint; entries without a usable IP are skipped."""
    if not isinstance(payload, dict):
        return []
    items = payload.get("bridges")
    if not isinstance(items, list):
        return []

    found: dict[str, DiscoveredBridge] = {}
    for item in items:
        if not isinstance(item, dict):
            continue
        ip = _valid_ip(item.get("ip"))
        if not ip or "bridgeId" not in item:
            continue
        port = item.get("port")
        updated = item.get("dateUpdated")
        bridge = DiscoveredBridge(
            bridge_id=str(item["bridgeId"]),
            ip=ip,
            port=port if isinstance(port, int) and not isinstance(port, bool) else 8080,
            date_updated=updated if isinstance(updated, str) else None,
        )
        prev = found.get(bridge.bridge_id)
        # Keep the most recent announcement per bridge (ISO timestamps sort lexically).
        if prev is None or (bridge.date_updated or "") > (prev.date_updated or ""):
            found[bridge.bridge_id] = bridge
    return list(found.values())


def discover(*, timeout_seconds: float = 5.0, transport: httpx.BaseTransport | None = None) -> list[DiscoveredBridge]:
    with httpx.Client(timeout=timeout_seconds, transport=transport) as client:
        resp = client.get(DISCOVERY_URL)
        resp.raise_for_status()
        return parse_discovery_payload(resp.json())


def _print_bridges(bridges: list[DiscoveredBridge], *, json_out: bool) -> None:
    if json_out:
        print(json.dumps([asdict(b) for b in bridges], indent=2))
        return
    if not bridges:
        print("No bridges found.")
        return
    for idx, b in enumerate(bridges, start=1):
        print(f"{idx}. {b.ip}:{b.port} bridgeId={b.bridge_id} updated={b.date_updated or '-'}")
    print()
    print("Configure the gateway with, for example:")
    print(f"  NUKI_BRIDGE_HOST={bridges[0].ip} NUKI_BRIDGE_PORT={bridges[0].port} NUKI_BRIDGE_ID={bridges[0].bridge_id}")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="nuki-gateway-discover")
    parser.add_argument("--timeout-seconds", type=float, default=5.0)
    parser.add_argument("--json", action="store_true")
    args = parser.parse_args(argv)

    try:
        bridges = discover(timeout_seconds=args.timeout_seconds)
    except (httpx.HTTPError, ValueError) as exc:
        print(f"Discovery failed: {exc}", file=sys.stderr)
        raise SystemExit(1)

    _print_bridges(bridges, json_out=args.json)


if __name__ == "__main__":
    main()
