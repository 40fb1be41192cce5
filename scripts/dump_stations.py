#!/usr/bin/env python3
"""Dump everything the fuelsync library can fetch.

Fetches the station table, prints the normalized stations, region counts
and map bounds, and optionally the raw backend rows so you can spot fields
that aren't normalized yet.

Usage
-----
Set environment variables and run::

    export FUELSYNC_API_TOKEN="your-database-token"
    python scripts/dump_stations.py

Options::

    --json               Output as machine-readable JSON
    --output FILE        Write output to FILE instead of stdout
    --limit N            Only print the first N stations (default: 20)
    --raw                Include raw backend rows
    --listen SECONDS     Keep the realtime channel open and print updates
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from fuelsync import FuelSyncClient, FuelSyncConfig, RealtimeUpdate, spatial  # noqa: E402
from fuelsync.models.realtime import ConnectionState  # noqa: E402


def _section(title: str) -> str:
    line = "=" * 60
    return f"\n{line}\n  {title}\n{line}"


def _station_line(station: Any) -> str:
    prices = ", ".join(f"{fuel}={price:.2f}" for fuel, price in sorted(station.fuel_prices.items()))
    coords = f"{station.latitude:.4f},{station.longitude:.4f}" if station.has_valid_coordinates else "no coords"
    return f"  {station.id:<12} {station.name[:32]:<32} {station.brand or '-':<10} {coords:<22} {prices}"


async def _listen(client: FuelSyncClient, seconds: float, out: list[dict[str, Any]]) -> None:
    def _on_update(update: RealtimeUpdate) -> None:
        out.append(update.model_dump(exclude={"raw"}))
        print(f"  update station={update.station_id} prices={update.fuel_prices} ts={update.timestamp}")

    def _on_state(state: ConnectionState, error: Exception | None) -> None:
        print(f"  realtime: {state}{f' ({error})' if error else ''}", file=sys.stderr)

    client.add_update_listener(_on_update)
    client.add_state_listener(_on_state)
    await client.start_realtime()
    await asyncio.sleep(seconds)
    await client.stop_realtime()


async def main() -> None:
    parser = argparse.ArgumentParser(
        description="Dump station data fuelsync can fetch for debugging / development.",
    )
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Output machine-readable JSON")
    parser.add_argument("--output", "-o", help="Write output to FILE instead of stdout")
    parser.add_argument("--limit", type=int, default=20, help="Stations to print in text mode")
    parser.add_argument("--raw", action="store_true", help="Include raw backend rows")
    parser.add_argument("--listen", type=float, default=0.0, help="Seconds to listen for realtime updates")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    config = FuelSyncConfig.from_env(realtime={"enabled": False})
    result: dict[str, Any] = {
        "timestamp": datetime.now(UTC).isoformat(),
        "rows_url": config.rows_url,
        "prices_url": config.prices_rows_url,
    }

    async with FuelSyncClient(config) as client:
        fetched = await client.fetch_stations()
        status = client.get_status()
        counts = client.region_counts()
        points = client.spatial_points()
        box = spatial.bounds(points)

        result.update(
            {
                "source": fetched.source,
                "partial": fetched.partial,
                "error": fetched.error.model_dump() if fetched.error else None,
                "station_count": len(fetched.stations),
                "map_points": len(points),
                "bounds": box.model_dump() if box else None,
                "regions": counts,
                "stations": [
                    station.model_dump(exclude=set() if args.raw else {"raw"}) for station in fetched.stations
                ],
            }
        )

        if not args.json_mode:
            out: list[str] = [_section("fuelsync dump_stations")]
            out.append(f"  time      : {result['timestamp']}")
            out.append(f"  rows url  : {config.rows_url}")
            out.append(f"  prices url: {config.prices_rows_url or '(prices read from station rows)'}")
            out.append(f"  source    : {fetched.source}{' (partial)' if fetched.partial else ''}")
            out.append(f"  stations  : {len(fetched.stations)} ({len(points)} with coordinates)")
            out.append(f"  last fetch: {status.last_fetch}")
            if fetched.error:
                out.append(f"  error     : {fetched.error.kind}: {fetched.error.message}")
            out.append(_section("REGIONS"))
            for region_id, count in counts.items():
                out.append(f"  {region_id:<16} {count}")
            if box:
                out.append(f"  bounds: {box.min_lat:.4f},{box.min_lng:.4f} .. {box.max_lat:.4f},{box.max_lng:.4f}")
            out.append(_section(f"STATIONS (first {args.limit})"))
            out.extend(_station_line(station) for station in fetched.stations[: args.limit])
            if args.raw:
                out.append(_section("RAW ROWS"))
                for station in fetched.stations[: args.limit]:
                    out.append(json.dumps(station.raw, indent=2, default=str, ensure_ascii=False))
            print("\n".join(out))

        if args.listen > 0:
            if not config.realtime.url:
                print("FUELSYNC_REALTIME_URL is not set; skipping --listen", file=sys.stderr)
            else:
                updates: list[dict[str, Any]] = []
                if not args.json_mode:
                    print(_section(f"REALTIME ({args.listen:.0f}s)"))
                await _listen(client, args.listen, updates)
                result["updates"] = updates

    # ── Output ──
    payload = json.dumps(result, indent=2, default=str, ensure_ascii=False)
    if args.json_mode and not args.output:
        print(payload)
    elif args.output:
        Path(args.output).write_text(payload, encoding="utf-8")
        print(f"JSON written to {args.output}", file=sys.stderr)


if __name__ == "__main__":
    asyncio.run(main())
