import time, os, base64, logging
from dataclasses import dataclass
from typing import Callable, List, Optional

import httpx
from dotenv import load_dotenv

load_dotenv()
load_dotenv(".env.spotify")

log = logging.getLogger(__name__)

SPOTIFY_CLIENT_ID = os.getenv("SPOTIFY_CLIENT_ID")
SPOTIFY_CLIENT_SECRET = os.getenv("SPOTIFY_CLIENT_SECRET")

TOKEN_URL = "https://accounts.spotify.com/api/token"
SEARCH_URL = "https://api.spotify.com/v1/search"
TOKEN_TIMEOUT = float(os.getenv("SPOTIFY_TOKEN_TIMEOUT", "15"))
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "20"))
MAX_PAGE_SIZE = 50  # Spotify search caps `limit` at 50


class MusicServiceError(Exception):
    """Base class for failures talking to the catalog."""


class AuthError(MusicServiceError):
    """The client-credentials exchange was rejected or could not be made."""


class SearchError(MusicServiceError):
    """A single catalog search call failed."""


@dataclass(frozen=True)
class Token:
    value: str
    expires_at: float


@dataclass(frozen=True)
class Track:
    title: str
    artist: str
    url: str

    @classmethod
    def from_item(cls, t: dict) -> "Track":
        return cls(
            title=t.get("name") or "",
            artist=", ".join(a.get("name") or "" for a in (t.get("artists") or [])),
            url=(t.get("external_urls") or {}).get("spotify") or "",
        )

    def to_dict(self) -> dict:
        return {"title": self.title, "artist": self.artist, "url": self.url}


class TokenCache:
    """
    Holds the single app token used for every catalog call.

    A token is reused while `now < expires_at`; otherwise a fresh
    client-credentials exchange runs. Concurrent misses are not coalesced:
    each one exchanges on its own and the last response stored wins.
    """

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.client_id = client_id if client_id is not None else SPOTIFY_CLIENT_ID
        self.client_secret = client_secret if client_secret is not None else SPOTIFY_CLIENT_SECRET
        self._transport = transport
        self._clock = clock
        self._token: Optional[Token] = None

    @property
    def token(self) -> Optional[Token]:
        return self._token

    async def get_token(self) -> Token:
        now = self._clock()
        cached = self._token
        if cached is not None and now < cached.expires_at:
            return cached

        basic = base64.b64encode(f"{self.client_id}:{self.client_secret}".encode()).decode()
        headers = {"Authorization": f"Basic {basic}", "Content-Type": "application/x-www-form-urlencoded"}
        try:
            async with httpx.AsyncClient(timeout=TOKEN_TIMEOUT, transport=self._transport) as client:
                r = await client.post(
                    TOKEN_URL,
                    data={"grant_type": "client_credentials"},
                    headers=headers,
                )
                r.raise_for_status()
                data = r.json()
            token = Token(value=data["access_token"], expires_at=now + int(data["expires_in"]))
        except httpx.HTTPStatusError as e:
            log.error("Token exchange rejected: HTTP %s", e.response.status_code)
            raise AuthError(f"token exchange rejected ({e.response.status_code})") from e
        except httpx.HTTPError as e:
            log.error("Token exchange failed: %s", e)
            raise AuthError("token exchange failed") from e
        except (ValueError, KeyError, TypeError) as e:
            log.error("Token exchange returned an unusable body: %s", e)
            raise AuthError("token exchange returned an unusable body") from e

        self._token = token
        log.info("Fetched new app token, valid for %ss", int(token.expires_at - now))
        return token


class SearchClient:
    def __init__(
        self,
        tokens: TokenCache,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.tokens = tokens
        self._transport = transport

    async def search(self, query: str, limit: int = 12) -> List[Track]:
        token = await self.tokens.get_token()
        params = {"q": query, "type": "track", "limit": max(1, min(int(limit), MAX_PAGE_SIZE))}
        headers = {"Authorization": f"Bearer {token.value}"}
        try:
            async with httpx.AsyncClient(timeout=HTTP_TIMEOUT, transport=self._transport) as client:
                r = await client.get(SEARCH_URL, params=params, headers=headers)
                r.raise_for_status()
                data = r.json()
        except httpx.HTTPStatusError as e:
            raise SearchError(f"search {query!r} failed with HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise SearchError(f"search {query!r} failed: {e}") from e
        except ValueError as e:
            raise SearchError(f"search {query!r} returned invalid JSON") from e

        items = (data.get("tracks") or {}).get("items") or []
        tracks = [Track.from_item(t) for t in items if t]
        log.debug("search q=%r limit=%s -> %d tracks", query, params["limit"], len(tracks))
        return tracks
