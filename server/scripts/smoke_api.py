#!/usr/bin/env python3
"""Smoke-test a running Lyricsmith server end to end.

Usage:
    # Against a local server:
    python scripts/smoke_api.py --url http://localhost:8000

    # Skip speech synthesis (no TTS key on the server):
    python scripts/smoke_api.py --url http://localhost:8000 --no-voice

Polls /health until the server answers, then generates a song, revises its
chorus, asks for music suggestions, chats, and (optionally) renders a voice
preview. Exits non-zero if any step fails.
"""

from __future__ import annotations

import argparse
import sys
import time

import httpx

SONG_REQUEST = {
    "genre": "indie",
    "vibe": "dreamy",
    "theme": "late night drive along the coast",
    "style": "mid-tempo",
}


def wait_for_server(
    client: httpx.Client, *, timeout_s: int = 60, poll_interval_s: int = 2
) -> bool:
    """Poll /health until it returns 200 or timeout expires."""
    print(f"⏳ Waiting for server (timeout: {timeout_s}s)...")
    start = time.perf_counter()
    while time.perf_counter() - start < timeout_s:
        try:
            resp = client.get("/health", timeout=5)
            if resp.status_code == 200:
                print(f"✅ Server up in {time.perf_counter() - start:.1f}s")
                return True
        except httpx.RequestError as e:
            print(f"   Connection failed ({e}), retrying...")
        time.sleep(poll_interval_s)

    print("❌ Server did not answer within timeout.")
    return False


def call(client: httpx.Client, method: str, path: str, **kwargs) -> httpx.Response | None:
    t0 = time.perf_counter()
    try:
        resp = client.request(method, path, timeout=120, **kwargs)
    except httpx.RequestError as e:
        print(f"  {method:4s} {path:28s} ❌ {e}")
        return None
    elapsed_ms = (time.perf_counter() - t0) * 1000
    marker = "✅" if resp.status_code == 200 else "❌"
    print(f"  {method:4s} {path:28s} {marker} {resp.status_code} ({elapsed_ms:.0f}ms)")
    if resp.status_code != 200:
        print(f"     {resp.text[:200]}")
        return None
    return resp


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--url", required=True, help="Server base URL (e.g. http://localhost:8000)")
    parser.add_argument("--prefix", default="/api", help="API prefix (default: /api)")
    parser.add_argument("--origin", default="http://localhost:3000", help="Origin header to send")
    parser.add_argument("--no-voice", action="store_true", help="Skip the voice preview step")
    parser.add_argument("--timeout", type=int, default=60, help="Seconds to wait for the server")
    args = parser.parse_args()

    client = httpx.Client(base_url=args.url, headers={"Origin": args.origin})
    if not wait_for_server(client, timeout_s=args.timeout):
        sys.exit(1)

    p = args.prefix
    failures: list[str] = []

    print("\n🎵 Running smoke checks...\n")

    health = call(client, "GET", f"{p}/health")
    if health is None:
        failures.append("health")
    else:
        data = health.json()["data"]
        print(f"     status={data['status']} llm={data['services']['llm']['details']['service']}")

    song = call(client, "POST", f"{p}/generate-song", json=SONG_REQUEST)
    if song is None:
        failures.append("generate-song")
        song_data = None
    else:
        song_data = song.json()["data"]
        meta = song_data["metadata"]
        print(f"     {meta['wordCount']} words · {meta['estimatedDuration']} · {song_data['suggestions']['tempo']['bpm']} bpm")

    if song_data is not None:
        revision = {
            "songId": song_data["songId"],
            "lyrics": song_data["lyrics"],
            "revisionType": "section",
            "target": "chorus",
            "instruction": "Make the chorus more hopeful",
        }
        if call(client, "POST", f"{p}/revise", json=revision) is None:
            failures.append("revise")
        if call(client, "GET", f"{p}/revise", params={"songId": song_data["songId"]}) is None:
            failures.append("revision-history")
        suggest = {"lyrics": song_data["lyrics"], "genre": SONG_REQUEST["genre"], "vibe": SONG_REQUEST["vibe"]}
        if call(client, "POST", f"{p}/suggest-music", json=suggest) is None:
            failures.append("suggest-music")

    chat = {"message": "How do I make my bridge stand out?", "context": {"genre": "indie"}}
    if call(client, "POST", f"{p}/chat", json=chat) is None:
        failures.append("chat")

    if not args.no_voice:
        preview = {"lyrics": "Headlights on the water, we keep driving", "artistStyle": "billie-eilish"}
        resp = call(client, "POST", f"{p}/preview-voice", json=preview)
        if resp is None:
            failures.append("preview-voice")
        else:
            print(f"     {len(resp.content)} bytes · {resp.headers.get('X-Voice-Preset')}")

    client.close()

    # ── Summary ──────────────────────────────────────────────────────────
    print(f"\n{'─' * 60}")
    if failures:
        print(f"  Failed: {', '.join(failures)}")
    else:
        print("  All smoke checks passed.")
    print(f"{'─' * 60}\n")

    if failures:
        sys.exit(1)


if __name__ == "__main__":
    main()
