from __future__ import annotations

import argparse
import os
import sys
import time
from typing import Any

import httpx


def request_token(client: httpx.Client, base_url: str, *, timeout: float) -> str | None:
    """One `/auth` attempt. The bridge holds the request open until its button is pressed or 30s pass."""
    resp = client.get(f"{base_url}/auth", timeout=timeout)
    if resp.status_code == 403:
        raise RuntimeError("Bridge HTTP API is disabled or auth is not allowed (HTTP 403).")
    resp.raise_for_status()
    payload: Any = resp.json()
    if isinstance(payload, dict) and payload.get("success") is True and isinstance(payload.get("token"), str):
        return payload["token"]
    return None


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="nuki-gateway-pair")
    parser.add_argument("--bridge-host", default=os.getenv("NUKI_BRIDGE_HOST"))
    parser.add_argument("--bridge-port", type=int, default=int(os.getenv("NUKI_BRIDGE_PORT", "8080")))
    parser.add_argument("--timeout-seconds", type=int, default=90)
    parser.add_argument("--print-token", action="store_true", help="Print the full API token (sensitive).")
    args = parser.parse_args(argv)

    if not args.bridge_host:
        print("Missing bridge host. Provide --bridge-host or set NUKI_BRIDGE_HOST.", file=sys.stderr)
        raise SystemExit(2)

    base_url = f"http://{args.bridge_host}:{args.bridge_port}"
    print("Press the button on the Nuki Bridge now.")

    deadline = time.time() + args.timeout_seconds
    attempt = 0
    with httpx.Client() as client:
        while time.time() < deadline:
            attempt += 1
            try:
                token = request_token(client, base_url, timeout=35.0)
            except RuntimeError as exc:
                print(str(exc), file=sys.stderr)
                raise SystemExit(1)
            except httpx.HTTPError as exc:
                print(f"[{attempt}] Bridge request failed: {exc}", file=sys.stderr)
                time.sleep(2.0)
                continue

            if token:
                if args.print_token:
                    print(f"API token: {token}")
                else:
                    print(f"API token (masked): {token[:2]}…{token[-2:]}")
                print("Set NUKI_API_TOKEN to this value to configure the gateway.")
                raise SystemExit(0)

            remaining = int(deadline - time.time())
            print(f"[{attempt}] Button not pressed yet. Retrying… ({remaining}s left)")

    print("Pairing timed out.", file=sys.stderr)
    raise SystemExit(1)


if __name__ == "__main__":
    main()
