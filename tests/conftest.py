from moodflow.spotify import Track


def make_tracks(*titles, artist="Artist"):
    return [Track(title=t, artist=artist, url=f"https://open.spotify.com/track/{i}") for i, t in enumerate(titles)]


class FakeSearch:
    """Scripted stand-in for SearchClient: query -> list of tracks or an exception."""

    def __init__(self, responses=None, default=None):
        self.responses = dict(responses or {})
        self.default = default if default is not None else []
        self.calls = []

    async def search(self, query, limit=12):
        self.calls.append((query, limit))
        outcome = self.responses.get(query, self.default)
        if isinstance(outcome, Exception):
            raise outcome
        return list(outcome)

