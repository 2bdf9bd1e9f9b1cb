#!/usr/bin/env python3
"""
moodflow: mood / vibe / memory prompts -> curated Spotify track lists.

Highlights:
- One shared app token (client-credentials), reused until it expires.
- Therapy: three sequential stages (soothe, settle, lift), 6 tracks each;
  language-suffixed seeds fall back to the bare seed when empty.
- Nostalgia & Vibe: one widened query, broad fallback phrase when empty.
- Build-A-Track: four prompt variants searched in parallel, merged,
  de-duplicated by title, broad fallback when nothing survives.

ENV:
  SPOTIFY_CLIENT_ID=...
  SPOTIFY_CLIENT_SECRET=...

Install:
  pip install -e .
"""

import argparse
import asyncio
import json
import logging
from typing import Optional

from moodflow import aggregator, planner
from moodflow.spotify import SearchClient, TokenCache

log = logging.getLogger(__name__)

STAGE_NAMES = ("stage1", "stage2", "stage3")


# =========================== Relay ===========================
class Relay:
    """
    Endpoint-facing service. Owns the process-wide token cache and the search
    client built on it; each method takes a raw JSON body and returns the
    response payload.
    """

    def __init__(self, search: Optional[SearchClient] = None, tokens: Optional[TokenCache] = None):
        if search is None:
            tokens = tokens or TokenCache()
            search = SearchClient(tokens)
        self.search = search
        self.tokens = tokens or getattr(search, "tokens", None)

    async def therapy(self, body: dict) -> dict:
        req = planner.TherapyRequest.from_payload(body)
        qs = planner.plan_therapy(req)
        stages = await aggregator.run_staged(self.search, qs, labels=qs.fallbacks)
        payload = {name: r.track_dicts() for name, r in zip(STAGE_NAMES, stages)}
        payload["meta"] = {
            "mood": qs.label,
            "stages": [{"label": r.label, "fallback": r.fallback_applied} for r in stages],
        }
        return payload

    async def nostalgia(self, body: dict) -> dict:
        qs = planner.plan_nostalgia(planner.NostalgiaRequest.from_payload(body))
        result = await aggregator.aggregate(self.search, qs)
        return {"tracks": result.track_dicts(), "meta": {"label": result.label}}

    async def vibe(self, body: dict) -> dict:
        req = planner.VibeRequest.from_payload(body)
        result = await aggregator.aggregate(self.search, planner.plan_vibe(req))
        snapshot = f"Vibe: {result.label}. "
        if req.prompt:
            snapshot += f"You described: {req.prompt}."
        return {
            "tracks": result.track_dicts(),
            "meta": {"label": result.label, "snapshot": snapshot},
        }

    async def build_by_ingredients(self, body: dict) -> dict:
        req = planner.BlendRequest.from_payload(body)
        result = await aggregator.aggregate(self.search, planner.plan_blend(req))
        mood = f" • mood: {req.mood}" if req.mood else ""
        return {
            "tracks": result.track_dicts(),
            "meta": {
                "label": result.label,
                "snapshot": f"Generated {len(result.tracks)} unique tracks from your ingredients{mood}.",
            },
        }

    async def dispatch(self, mode: str, body: dict) -> dict:
        handlers = {
            "therapy": self.therapy,
            "nostalgia": self.nostalgia,
            "vibe": self.vibe,
            "bydj": self.build_by_ingredients,
        }
        if mode not in handlers:
            raise planner.ValidationError(f"Unknown mode: {mode}")
        return await handlers[mode](body)


# =========================== Formatting & CLI ===========================
def print_preview(mode: str, payload: dict) -> None:
    print("\nmoodflow · Preview")
    print("Mode:", mode)
    if "tracks" in payload:
        sections = [(payload["meta"].get("label", ""), payload["tracks"])]
    else:
        sections = [(s["label"], payload[name]) for name, s in zip(STAGE_NAMES, payload["meta"]["stages"])]
    for label, tracks in sections:
        print(f"\n[{label}]")
        for i, t in enumerate(tracks, 1):
            print(f"{i:2d}. {t['artist']} — {t['title']}  {t['url']}")
    snapshot = payload.get("meta", {}).get("snapshot")
    if snapshot:
        print("\n" + snapshot)


def main():
    parser = argparse.ArgumentParser(description="moodflow (Spotify mood/vibe relay)")
    parser.add_argument("mode", choices=["therapy", "nostalgia", "vibe", "bydj"])
    parser.add_argument("prompt", nargs="*", help="Free text: 'rainy night', 'summer road trip' ...")
    parser.add_argument("--mood", help="Mood key (therapy) or mood shading (other modes)")
    parser.add_argument("--language", default="english", help="therapy: english, hindi or punjabi")
    parser.add_argument("--vibe", help="Vibe key, e.g. chill, night_drive, rainy")
    parser.add_argument("--room", dest="sub_mode", help="nostalgia: childhood, teen, year or prompt")
    parser.add_argument("--year", help="nostalgia --room year: the year to revisit")
    parser.add_argument("--json", action="store_true", help="Print the raw JSON payload")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    body = {
        "prompt": " ".join(args.prompt).strip() or None,
        "mood": args.mood,
        "language": args.language,
        "vibe": args.vibe,
        "mode": args.sub_mode,
        "year": args.year,
    }

    try:
        payload = asyncio.run(Relay().dispatch(args.mode, body))
    except planner.ValidationError as e:
        parser.error(str(e))

    if args.json:
        print(json.dumps(payload, indent=2, ensure_ascii=False))
    else:
        print_preview(args.mode, payload)


if __name__ == "__main__":
    main()
