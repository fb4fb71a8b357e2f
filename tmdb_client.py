"""
Minimal TMDB client for series names and season episode titles.

Metadata is best-effort: every failure (network, HTTP status, bad JSON) ends in
a warning and a None result, never an exception. Requests are spaced by a flat
minimum interval to stay under TMDB's rate limit.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import Any

import httpx

from console_log import debug, warn

TMDB_API_BASE = "https://api.themoviedb.org/3"

# Retry settings
TMDB_RETRY_DELAY = 1.0  # seconds, will use exponential backoff


@dataclass(frozen=True)
class TmdbCfg:
    api_key: str | None = None
    access_token: str | None = None
    base_url: str = TMDB_API_BASE
    language: str = "en-US"
    min_request_interval: float = 0.25  # seconds between requests
    timeout: float = 10.0
    max_retries: int = 3


@dataclass(frozen=True)
class RemoteSeries:
    id: int
    name: str
    first_air_year: int | None = None


@dataclass(frozen=True)
class RemoteEpisode:
    episode_number: int
    title: str


def normalize_search_query(name: str) -> str:
    """Normalize a series name for TMDB search.

    'Show_Name' -> 'Show Name', 'Show.Name-2' -> 'Show Name 2'
    """
    name = re.sub(r"[_.\-]", " ", name)
    return re.sub(r"\s+", " ", name).strip()


class TmdbClient:
    def __init__(
        self,
        cfg: TmdbCfg,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.cfg = cfg
        headers = {"Accept": "application/json"}
        if cfg.access_token:
            headers["Authorization"] = f"Bearer {cfg.access_token}"
        self._client = httpx.Client(
            base_url=cfg.base_url,
            headers=headers,
            timeout=cfg.timeout,
            transport=transport,
        )
        self._last_request: float | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self.cfg.api_key or self.cfg.access_token)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> TmdbClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _throttle(self) -> None:
        """Block until min_request_interval has passed since the previous request."""
        if self._last_request is not None:
            wait = self.cfg.min_request_interval - (time.monotonic() - self._last_request)
            if wait > 0:
                time.sleep(wait)
        self._last_request = time.monotonic()

    def _get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any] | None:
        """
        GET a TMDB endpoint with retry logic.

        Returns the parsed JSON object, or None on failure.
        """
        query: dict[str, Any] = {"language": self.cfg.language, **(params or {})}
        if self.cfg.api_key:
            query["api_key"] = self.cfg.api_key

        last_error: Exception | None = None
        attempts = max(1, self.cfg.max_retries)

        for attempt in range(attempts):
            self._throttle()
            delay = TMDB_RETRY_DELAY * (2**attempt)
            try:
                resp = self._client.get(path, params=query)
                resp.raise_for_status()
                data = resp.json()
                if not isinstance(data, dict):
                    warn(f"TMDB returned unexpected payload for {path}")
                    return None
                return data

            except httpx.TimeoutException as e:
                last_error = e
                debug(f"TMDB timeout (attempt {attempt + 1}/{attempts})")

            except httpx.HTTPStatusError as e:
                last_error = e
                status = e.response.status_code
                # Don't retry on client errors (4xx) except 429 (rate limit)
                if 400 <= status < 500 and status != 429:
                    debug(f"TMDB client error: {status}")
                    break
                debug(f"TMDB HTTP {status} (attempt {attempt + 1}/{attempts})")

            except httpx.HTTPError as e:
                last_error = e
                debug(f"TMDB error (attempt {attempt + 1}/{attempts}): {e}")

            except ValueError as e:
                # Bad JSON body
                warn(f"TMDB returned invalid JSON for {path}: {e}")
                return None

            if attempt < attempts - 1:
                time.sleep(delay)

        if last_error:
            warn(f"TMDB request {path} failed: {last_error}")
        return None

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    def search_series(self, name: str) -> RemoteSeries | None:
        """Search TMDB for a TV series; returns the top result or None."""
        query = normalize_search_query(name)
        if not query:
            return None

        debug(f"Searching TMDB for: '{query}'")
        data = self._get("/search/tv", {"query": query})
        if data is None:
            return None

        results = data.get("results")
        if not isinstance(results, list) or not results or not isinstance(results[0], dict):
            return None

        top = results[0]
        try:
            series_id = int(top["id"])
        except (KeyError, TypeError, ValueError):
            return None

        year_str = str(top.get("first_air_date") or "")[:4]
        return RemoteSeries(
            id=series_id,
            name=str(top.get("name") or query),
            first_air_year=int(year_str) if year_str.isdigit() else None,
        )

    def get_season_episodes(self, series_id: int, season: int) -> list[RemoteEpisode] | None:
        """Fetch a season's episode list ordered by episode number, or None."""
        debug(f"Fetching episodes for TMDB ID {series_id} S{season}")
        data = self._get(f"/tv/{series_id}/season/{season}")
        if data is None:
            return None

        raw_episodes = data.get("episodes")
        if not isinstance(raw_episodes, list):
            return None

        episodes: list[RemoteEpisode] = []
        for ep in raw_episodes:
            if not isinstance(ep, dict):
                continue
            ep_num = ep.get("episode_number")
            if not isinstance(ep_num, int) or ep_num < 1:
                continue
            episodes.append(RemoteEpisode(ep_num, str(ep.get("name") or f"Episode {ep_num}")))

        if not episodes:
            return None

        episodes.sort(key=lambda e: e.episode_number)
        debug(f"  Retrieved {len(episodes)} episodes from TMDB")
        return episodes
