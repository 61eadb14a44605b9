#!/usr/bin/env python3
"""Poke a running conduit over Redis.

Usage examples:
    # Send a request and wait for the reply (activity is printed as it arrives)
    uv run python scripts/probe.py send "Hello there"

    # Force the tool loop
    uv run python scripts/probe.py send "Calculate 42*137+256" --mode autonomous

    # Current service status (as last published)
    uv run python scripts/probe.py status

    # Last 5 stored exchanges for a user
    uv run python scripts/probe.py history --user probe --limit 5
"""

import argparse
import asyncio
import json
import sys
import uuid
from pathlib import Path

import redis.asyncio as redis

# Allow running from project root
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from conduit.config import settings


async def send(client: redis.Redis, args: argparse.Namespace) -> int:
    request_id = args.id or f"probe-{uuid.uuid4().hex[:8]}"
    request = {"id": request_id, "user": args.user, "message": args.message}
    if args.mode:
        request["agent_mode"] = args.mode
    if args.temperature is not None:
        request["temperature"] = args.temperature
    if args.max_tokens is not None:
        request["max_tokens"] = args.max_tokens

    pubsub = client.pubsub()
    await pubsub.subscribe(settings.response_channel, settings.activity_channel)
    receivers = await client.publish(settings.request_channel, json.dumps(request))
    print(f"→ {request_id} sent to {settings.request_channel} ({receivers} listener(s))")
    if receivers == 0:
        print("No conduit is subscribed to the request channel.", file=sys.stderr)

    async def _wait() -> dict:
        async for message in pubsub.listen():
            if message["type"] != "message":
                continue
            payload = json.loads(message["data"])
            if message["channel"] == settings.activity_channel:
                if payload.get("request_id") == request_id:
                    activity = payload["activity"]
                    print(
                        f"  round {activity['round']}: "
                        f"{activity['tool_name']} {activity['status']}"
                    )
                continue
            if payload.get("id") == request_id:
                return payload
        return {}

    try:
        reply = await asyncio.wait_for(_wait(), timeout=args.timeout)
    except TimeoutError:
        print(f"No reply within {args.timeout:g}s", file=sys.stderr)
        return 1
    finally:
        await pubsub.aclose()

    print(json.dumps(reply, indent=2))
    return 1 if "error" in reply else 0


async def status(client: redis.Redis, args: argparse.Namespace) -> int:
    raw = await client.get(settings.status_key)
    if raw is None:
        print(f"No status stored under {settings.status_key}", file=sys.stderr)
        return 1
    print(json.dumps(json.loads(raw), indent=2))
    return 0


async def history(client: redis.Redis, args: argparse.Namespace) -> int:
    key = f"{settings.conversations_prefix}:{args.user}"
    entries = await client.lrange(key, 0, args.limit - 1)
    total = await client.llen(key)
    print(f"{key}: showing {len(entries)} of {total}")
    for raw in entries:
        entry = json.loads(raw)
        tools = ", ".join(entry.get("tools_used") or []) or "-"
        print(f"[{entry['timestamp']}] rounds={entry['agent_rounds']} tools={tools}")
        print(f"  > {entry['user_message']}")
        print(f"  < {entry['ai_response'][:200]}")
    return 0


async def _main(args: argparse.Namespace) -> int:
    client = redis.from_url(args.redis_url, decode_responses=True)
    try:
        return await args.handler(client, args)
    finally:
        await client.aclose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Probe a running conduit over Redis")
    parser.add_argument("--redis-url", default=settings.redis_url)
    sub = parser.add_subparsers(dest="command", required=True)

    p_send = sub.add_parser("send", help="Send a request and wait for the reply")
    p_send.add_argument("message")
    p_send.add_argument("--user", default="probe")
    p_send.add_argument("--id", default=None)
    p_send.add_argument("--mode", choices=["standard", "autonomous"], default=None)
    p_send.add_argument("--temperature", type=float, default=None)
    p_send.add_argument("--max-tokens", type=int, default=None)
    p_send.add_argument("--timeout", type=float, default=60.0)
    p_send.set_defaults(handler=send)

    p_status = sub.add_parser("status", help="Print the stored service status")
    p_status.set_defaults(handler=status)

    p_history = sub.add_parser("history", help="Print a user's stored conversations")
    p_history.add_argument("--user", default="probe")
    p_history.add_argument("--limit", type=int, default=5)
    p_history.set_defaults(handler=history)

    args = parser.parse_args()
    sys.exit(asyncio.run(_main(args)))


if __name__ == "__main__":
    main()
