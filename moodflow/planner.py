"""
Query planning: request body -> validated request -> QuerySet.

Each endpoint's loosely-typed JSON body is turned into one of four request
variants up front, so a missing `year` or `prompt` fails before any search
is made. Mood and vibe presets are enums with an explicit default arm.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple, Union


class ValidationError(ValueError):
    """Caller input is missing something the requested mode needs."""


# =========================== Presets ===========================
class Mood(str, Enum):
    SAD = "sad"
    ANGRY = "angry"
    FEARFUL = "fearful"
    DISGUSTED = "disgusted"
    SURPRISED = "surprised"
    HAPPY = "happy"
    NEUTRAL = "neutral"

    @classmethod
    def parse(cls, key: Optional[str]) -> "Mood":
        try:
            return cls((key or "").strip().lower())
        except ValueError:
            return cls.NEUTRAL


# one seed per stage: soothe -> settle -> lift
MOOD_SEEDS: Dict[Mood, Tuple[str, str, str]] = {
    Mood.SAD:       ("healing acoustic", "emotional mellow", "uplifting indie"),
    Mood.ANGRY:     ("calming ambient", "soft piano", "positive pop"),
    Mood.FEARFUL:   ("comfort calm vocal", "lofi relax", "confidence pop"),
    Mood.DISGUSTED: ("neutral chill", "soft indie", "fresh upbeat"),
    Mood.SURPRISED: ("atmosphere calm", "soft pop", "bright vibes"),
    Mood.HAPPY:     ("joy acoustic", "good vibes pop", "high energy"),
    Mood.NEUTRAL:   ("lofi calm", "indie mellow", "optimistic beats"),
}

LANGUAGE_SUFFIX: Dict[str, str] = {
    "hindi": " hindi",
    "punjabi": " punjabi",
}


class Vibe(str, Enum):
    CHILL = "chill"
    HYPE = "hype"
    ROMANTIC = "romantic"
    DREAMY = "dreamy"
    NIGHT_DRIVE = "night_drive"
    RAINY = "rainy"
    FOCUS = "focus"
    PARTY = "party"

    @classmethod
    def parse(cls, key: Optional[str]) -> Optional["Vibe"]:
        try:
            return cls(key)
        except ValueError:
            return None


VIBE_PHRASES: Dict[Vibe, str] = {
    Vibe.CHILL: "lofi chill beats mellow instrumental",
    Vibe.HYPE: "high energy pop dance upbeat",
    Vibe.ROMANTIC: "romantic slow love ballad",
    Vibe.DREAMY: "ethereal ambient dream pop",
    Vibe.NIGHT_DRIVE: "synthwave night drive neon",
    Vibe.RAINY: "rainy day acoustic mellow lofi",
    Vibe.FOCUS: "focus instrumental study lofi",
    Vibe.PARTY: "edm club bangers high energy",
}
DEFAULT_VIBE_PHRASE = "chill lofi"

NOSTALGIA_THEMES: Dict[str, Tuple[str, str]] = {
    "childhood": ("2000s kids show theme nostalgic soft happy", "Childhood • Nostalgic mix"),
    "teen": ("2010 teenage anthems pop rock nostalgia school vibes", "Teenage Years • Nostalgic mix"),
}

BLEND_SUFFIXES = ("popular tracks", "vibes music", "top songs")

# Broad stand-ins for a primary query that came back empty
NOSTALGIA_FALLBACK = "nostalgic retro throwback"
VIBE_FALLBACK = "nostalgic chill pop"
BLEND_FALLBACK = "nostalgic mellow mix"

STAGED = "staged"
FANOUT = "fanout"


# =========================== QuerySet ===========================
@dataclass(frozen=True)
class QuerySet:
    queries: Tuple[str, ...]
    label: str
    # per-query fallback for staged plans; a single broad query for fan-out
    fallbacks: Tuple[str, ...]
    strategy: str = STAGED
    fetch_limit: int = 12
    fallback_limit: int = 12
    output_size: int = 12

    def __post_init__(self):
        if not 1 <= len(self.queries) <= 4:
            raise ValueError(f"a QuerySet holds 1-4 queries, got {len(self.queries)}")


# =========================== Requests ===========================
def _text(v) -> str:
    if v is None:
        return ""
    return str(v).strip()


@dataclass(frozen=True)
class TherapyRequest:
    mood: str
    language: str = "english"

    @classmethod
    def from_payload(cls, body: dict) -> "TherapyRequest":
        mood = _text(body.get("mood"))
        if not mood:
            raise ValidationError("Mood missing")
        return cls(mood=mood, language=(_text(body.get("language")) or "english").lower())


@dataclass(frozen=True)
class NostalgiaRequest:
    mode: str
    year: Optional[str] = None
    prompt: Optional[str] = None
    vibe: Optional[str] = None
    mood: Optional[str] = None

    @classmethod
    def from_payload(cls, body: dict) -> "NostalgiaRequest":
        mode = _text(body.get("mode"))
        if not mode:
            raise ValidationError("Missing mode")
        year, prompt = _text(body.get("year")), _text(body.get("prompt"))
        if mode == "year" and not year:
            raise ValidationError("Year required")
        if mode == "prompt" and not prompt:
            raise ValidationError("Prompt required")
        if mode not in NOSTALGIA_THEMES and mode not in ("year", "prompt"):
            raise ValidationError(f"Unknown mode: {mode}")
        return cls(
            mode=mode,
            year=year or None,
            prompt=prompt or None,
            vibe=_text(body.get("vibe")) or None,
            mood=_text(body.get("mood")) or None,
        )


@dataclass(frozen=True)
class VibeRequest:
    vibe: Optional[str] = None
    prompt: Optional[str] = None
    mood: Optional[str] = None

    @classmethod
    def from_payload(cls, body: dict) -> "VibeRequest":
        return cls(
            vibe=_text(body.get("vibe")) or None,
            prompt=_text(body.get("prompt")) or None,
            mood=_text(body.get("mood")) or None,
        )


@dataclass(frozen=True)
class BlendRequest:
    prompt: str
    mood: Optional[str] = None

    @classmethod
    def from_payload(cls, body: dict) -> "BlendRequest":
        prompt = body.get("prompt")
        if prompt is not None and not isinstance(prompt, str):
            raise ValidationError("Invalid prompt")
        prompt = _text(prompt)
        if not prompt:
            raise ValidationError("Prompt required")
        return cls(prompt=prompt, mood=_text(body.get("mood")) or None)


PlanRequest = Union[TherapyRequest, NostalgiaRequest, VibeRequest, BlendRequest]

REQUEST_TYPES = {
    "therapy": TherapyRequest,
    "nostalgia": NostalgiaRequest,
    "vibe": VibeRequest,
    "bydj": BlendRequest,
}


def build_request(mode: str, params: Optional[dict]) -> PlanRequest:
    try:
        kind = REQUEST_TYPES[mode]
    except KeyError:
        raise ValidationError(f"Unknown planner mode: {mode}") from None
    return kind.from_payload(params or {})


# =========================== Planning ===========================
def plan_therapy(req: TherapyRequest) -> QuerySet:
    mood = Mood.parse(req.mood)
    seeds = MOOD_SEEDS[mood]
    suffix = LANGUAGE_SUFFIX.get(req.language, "")
    return QuerySet(
        queries=tuple(s + suffix for s in seeds),
        label=mood.value,
        fallbacks=seeds,
        strategy=STAGED,
        fetch_limit=8,
        fallback_limit=8,
        output_size=6,
    )


def plan_nostalgia(req: NostalgiaRequest) -> QuerySet:
    if req.mode == "year":
        query = f"top hits {req.year} nostalgic throwback"
        label = f"Year {req.year} • Throwback mix"
    elif req.mode == "prompt":
        query = f"{req.prompt} nostalgic memory aesthetic soft"
        label = "Memory Prompt • Personalized mix"
    else:
        query, label = NOSTALGIA_THEMES[req.mode]

    if req.vibe:
        query += f" {req.vibe} vibe"
    if req.mood:
        query += f" {req.mood} feel"

    return QuerySet(
        queries=(query,),
        label=label,
        fallbacks=(NOSTALGIA_FALLBACK,),
        fetch_limit=20,
        fallback_limit=16,
        output_size=12,
    )


def plan_vibe(req: VibeRequest) -> QuerySet:
    if req.prompt:
        query = f"{req.prompt} music"
        label = req.prompt
    else:
        preset = Vibe.parse(req.vibe)
        if preset is not None:
            query = VIBE_PHRASES[preset]
        elif req.vibe:
            query = f"{req.vibe} music"
        else:
            query = DEFAULT_VIBE_PHRASE
        label = re.sub(r"[_-]", " ", req.vibe or "Custom vibe")

    if req.mood:
        query += f" {req.mood}"
        label += f" • {req.mood}"

    return QuerySet(
        queries=(query,),
        label=label,
        fallbacks=(VIBE_FALLBACK,),
        fetch_limit=18,
        fallback_limit=18,
        output_size=12,
    )


def plan_blend(req: BlendRequest) -> QuerySet:
    variants = [req.prompt] + [f"{req.prompt} {s}" for s in BLEND_SUFFIXES]
    queries = tuple(dict.fromkeys(q for q in variants if q.strip()))[:4]
    return QuerySet(
        queries=queries,
        label="Build-A-Track result",
        fallbacks=(BLEND_FALLBACK,),
        strategy=FANOUT,
        fetch_limit=12,
        fallback_limit=20,
        output_size=12,
    )


def plan_request(req: PlanRequest) -> QuerySet:
    if isinstance(req, TherapyRequest):
        return plan_therapy(req)
    if isinstance(req, NostalgiaRequest):
        return plan_nostalgia(req)
    if isinstance(req, VibeRequest):
        return plan_vibe(req)
    if isinstance(req, BlendRequest):
        return plan_blend(req)
    raise TypeError(f"unsupported request type: {type(req).__name__}")


def plan(mode: str, params: Optional[dict] = None) -> QuerySet:
    return plan_request(build_request(mode, params))
