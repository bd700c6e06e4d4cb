"""CLI client for the AssetSync data sync API."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import httpx

DEFAULT_SERVER = "http://localhost:8000"
_LOCALHOST_HOSTS = {"localhost", "127.0.0.1", "::1"}


def validate_server_url(server_url: str, allow_insecure_http: bool = False) -> str:
    """Validate server URL and enforce HTTPS for non-localhost hosts by default."""
    normalized = server_url.strip().rstrip("/")
    parsed = urlparse(normalized)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError("Server URL must include scheme and host (e.g. https://example.com)")

    hostname = parsed.hostname
    if parsed.scheme == "http" and not allow_insecure_http and hostname not in _LOCALHOST_HOSTS:
        raise ValueError(
            "HTTPS is required for non-localhost servers. "
            "Use --allow-insecure-http only on trusted networks."
        )

    return normalized


def iter_sse_events(lines: Iterable[str]) -> Iterator[dict[str, Any]]:
    """Decode ``progress`` events from SSE lines. Comments are skipped."""
    event_name: str | None = None
    data_lines: list[str] = []
    for line in lines:
        if line == "":
            if event_name == "progress" and data_lines:
                yield json.loads("\n".join(data_lines))
            event_name = None
            data_lines = []
        elif line.startswith(":"):
            continue
        elif line.startswith("event:"):
            event_name = line[len("event:") :].strip()
        elif line.startswith("data:"):
            data_lines.append(line[len("data:") :].lstrip())
    if event_name == "progress" and data_lines:
        yield json.loads("\n".join(data_lines))


class DataSyncClient:
    """Client for the data sync endpoints of an AssetSync server."""

    def __init__(
        self,
        server_url: str,
        tenant_id: str | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.server_url = server_url.rstrip("/")
        headers = {"X-Tenant-Id": tenant_id} if tenant_id else {}
        self.client = httpx.Client(
            base_url=self.server_url,
            headers=headers,
            timeout=httpx.Timeout(60.0, read=None),
            transport=transport,
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self) -> DataSyncClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def run(
        self,
        *,
        dry_run: bool = False,
        storage_config: dict[str, Any] | None = None,
        on_event: Callable[[dict[str, Any]], None] | None = None,
    ) -> dict[str, Any]:
        """Stream a run and return the payload of its ``complete`` event.

        Raises RuntimeError if the server reports an error or the stream ends
        without completing.
        """
        body: dict[str, Any] = {"dry_run": dry_run}
        if storage_config is not None:
            body["storage_config"] = storage_config
        with self.client.stream("POST", "/api/data-sync/run", json=body) as resp:
            if resp.status_code >= 400:
                resp.read()
            resp.raise_for_status()
            for event in iter_sse_events(resp.iter_lines()):
                if on_event is not None:
                    on_event(event)
                if event.get("type") == "error":
                    raise RuntimeError(event.get("payload", {}).get("message", "Data sync failed"))
                if event.get("type") == "complete":
                    result: dict[str, Any] = event["payload"]
                    return result
        raise RuntimeError("Data sync stream ended before completion")

    def conflicts(self) -> list[dict[str, Any]]:
        """List conflicts for the tenant."""
        resp = self.client.get("/api/data-sync/conflicts")
        resp.raise_for_status()
        result: list[dict[str, Any]] = resp.json()
        return result

    def resolve(
        self,
        conflict_id: str,
        strategy: str,
        *,
        dry_run: bool = False,
        storage_config: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Resolve one conflict and return the resulting action."""
        body: dict[str, Any] = {"strategy": strategy, "dry_run": dry_run}
        if storage_config is not None:
            body["storage_config"] = storage_config
        resp = self.client.post(f"/api/data-sync/conflicts/{conflict_id}/resolve", json=body)
        resp.raise_for_status()
        result: dict[str, Any] = resp.json()
        return result


def _print_event(event: dict[str, Any]) -> None:
    payload = event.get("payload", {})
    kind = event.get("type")
    if kind == "stage" and payload.get("status") == "start" and payload.get("total"):
        print(f"[{payload['stage']}] {payload['total']} item(s)")
    elif kind == "action":
        action = payload["action"]
        marker = "" if action["applied"] else " (preview)"
        print(f"  {payload['index']}/{payload['total']} {action['type']} {action['storage_key']}{marker}")


def print_summary(summary: dict[str, Any]) -> None:
    print("Data Sync Summary:")
    print(f"  Storage objects:  {summary['storage_objects']}")
    print(f"  Database records: {summary['database_records']}")
    print(f"  Inserted:         {summary['inserted']}")
    print(f"  Updated:          {summary['updated']}")
    print(f"  Deleted:          {summary['deleted']}")
    print(f"  Conflicts:        {summary['conflicts']}")
    print(f"  Skipped:          {summary['skipped']}")


def _load_storage_config(path: str | None) -> dict[str, Any] | None:
    if path is None:
        return None
    config: dict[str, Any] = json.loads(Path(path).read_text(encoding="utf-8"))
    return config


def _error_detail(exc: httpx.HTTPStatusError) -> str:
    try:
        detail = exc.response.json().get("detail")
    except ValueError:
        detail = None
    return str(detail or exc)


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="assetsync-sync",
        description="Reconcile object storage with AssetSync photo records",
    )
    parser.add_argument("--server", "-s", default=DEFAULT_SERVER, help="Server URL")
    parser.add_argument("--tenant", "-t", help="Tenant id (default: server default)")
    parser.add_argument(
        "--storage-config",
        help="Path to a JSON storage configuration overriding the server default",
    )
    parser.add_argument(
        "--allow-insecure-http",
        action="store_true",
        help="Allow http:// server URLs for non-localhost hosts",
    )

    subparsers = parser.add_subparsers(dest="command")
    run_parser = subparsers.add_parser("run", help="Run a data sync")
    run_parser.add_argument("--dry-run", action="store_true", help="Preview without writing")
    subparsers.add_parser("conflicts", help="List unresolved conflicts")
    resolve_parser = subparsers.add_parser("resolve", help="Resolve one conflict")
    resolve_parser.add_argument("conflict_id")
    resolve_parser.add_argument(
        "--strategy",
        required=True,
        choices=["prefer-storage", "prefer-database"],
    )
    resolve_parser.add_argument("--dry-run", action="store_true", help="Preview without writing")

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 1

    try:
        server_url = validate_server_url(args.server, args.allow_insecure_http)
        storage_config = _load_storage_config(args.storage_config)
    except (ValueError, OSError) as exc:
        print(f"Error: {exc}")
        return 1

    with DataSyncClient(server_url, args.tenant) as client:
        try:
            if args.command == "run":
                result = client.run(
                    dry_run=args.dry_run, storage_config=storage_config, on_event=_print_event
                )
                print_summary(result["summary"])
            elif args.command == "conflicts":
                conflicts = client.conflicts()
                if not conflicts:
                    print("No conflicts.")
                for conflict in conflicts:
                    kind = (conflict.get("payload") or {}).get("type", "unknown")
                    print(f"  ! {conflict['id']} {conflict['storage_key']} ({kind})")
            elif args.command == "resolve":
                action = client.resolve(
                    args.conflict_id,
                    args.strategy,
                    dry_run=args.dry_run,
                    storage_config=storage_config,
                )
                state = "applied" if action["applied"] else "preview"
                print(f"{action['type']} {action['storage_key']} ({state}): {action.get('reason')}")
        except httpx.HTTPStatusError as exc:
            print(f"Error: {exc.response.status_code} {_error_detail(exc)}")
            return 1
        except (httpx.HTTPError, RuntimeError) as exc:
            print(f"Error: {exc}")
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
