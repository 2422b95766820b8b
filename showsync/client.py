"""
HTTP client for one deployment environment's admin export and import endpoints.

    GET  {base_url}/admin/export/shows    ?limit&offset&status&from_date&city&state
    GET  {base_url}/admin/export/artists  ?limit&offset&search
    GET  {base_url}/admin/export/venues   ?limit&offset&search&verified&city&state
    POST {base_url}/admin/data/import     {shows, artists, venues, dryRun}

Every request carries `Authorization: Bearer <token>`.
"""

import logging
from typing import Optional

import requests

from showsync.batch import (
    artist_from_dict,
    batch_to_dict,
    result_from_dict,
    show_from_dict,
    venue_from_dict,
)
from showsync.errors import AuthError, FetchError, PersistenceError
from showsync.models import Batch, BatchResult, CanonicalArtist, CanonicalShow, CanonicalVenue
from showsync.sessions import make_session

log = logging.getLogger(__name__)

DEFAULT_LIMIT = 50
MAX_LIMIT = 200


def clamp_limit(limit: Optional[int]) -> int:
    if not limit or limit < 1:
        return DEFAULT_LIMIT
    return min(limit, MAX_LIMIT)


class EnvironmentClient:
    def __init__(
        self,
        name: str,
        base_url: str,
        token: str,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
    ):
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.session = session or make_session()
        self.timeout = timeout

    def close(self) -> None:
        self.session.close()

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}", "Content-Type": "application/json"}

    def _check_auth(self, resp: requests.Response) -> None:
        if resp.status_code in (401, 403):
            raise AuthError(self.name, f"credential rejected (HTTP {resp.status_code})")

    def _get(self, path: str, params: dict) -> dict:
        url = f"{self.base_url}{path}"
        params = {k: v for k, v in params.items() if v is not None}
        try:
            resp = self.session.get(url, params=params, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as exc:
            raise FetchError(self.name, f"GET {path} failed: {exc}") from exc
        self._check_auth(resp)
        if not resp.ok:
            raise FetchError(self.name, f"GET {path} returned HTTP {resp.status_code}")
        try:
            return resp.json()
        except ValueError as exc:
            raise FetchError(self.name, f"GET {path} returned invalid JSON") from exc

    # --- Exports ---

    def export_shows(
        self,
        status: Optional[str] = "approved",
        limit: int = DEFAULT_LIMIT,
        offset: int = 0,
        from_date: Optional[str] = None,
        city: Optional[str] = None,
        state: Optional[str] = None,
    ) -> tuple[list[CanonicalShow], int]:
        data = self._get("/admin/export/shows", {
            "limit": clamp_limit(limit),
            "offset": offset,
            "status": status,
            "from_date": from_date,
            "city": city,
            "state": state,
        })
        return [show_from_dict(s) for s in data.get("shows") or []], data.get("total", 0)

    def export_artists(
        self,
        search: Optional[str] = None,
        limit: int = DEFAULT_LIMIT,
        offset: int = 0,
    ) -> tuple[list[CanonicalArtist], int]:
        data = self._get("/admin/export/artists", {
            "limit": clamp_limit(limit),
            "offset": offset,
            "search": search,
        })
        return [artist_from_dict(a) for a in data.get("artists") or []], data.get("total", 0)

    def export_venues(
        self,
        search: Optional[str] = None,
        verified: Optional[bool] = None,
        city: Optional[str] = None,
        state: Optional[str] = None,
        limit: int = DEFAULT_LIMIT,
        offset: int = 0,
    ) -> tuple[list[CanonicalVenue], int]:
        data = self._get("/admin/export/venues", {
            "limit": clamp_limit(limit),
            "offset": offset,
            "search": search,
            "verified": None if verified is None else str(verified).lower(),
            "city": city,
            "state": state,
        })
        return [venue_from_dict(v) for v in data.get("venues") or []], data.get("total", 0)

    def export_batch(self, status: Optional[str] = "approved", page_size: int = MAX_LIMIT) -> Batch:
        """Page through all three export endpoints and return everything as one batch."""
        batch = Batch()
        for fetch, records in (
            (lambda off: self.export_venues(limit=page_size, offset=off), batch.venues),
            (lambda off: self.export_artists(limit=page_size, offset=off), batch.artists),
            (lambda off: self.export_shows(status=status, limit=page_size, offset=off), batch.shows),
        ):
            offset = 0
            while True:
                page, total = fetch(offset)
                records.extend(page)
                offset += len(page)
                if not page or offset >= total:
                    break
        log.info(
            "Exported %d venues, %d artists, %d shows from %s",
            len(batch.venues), len(batch.artists), len(batch.shows), self.name,
        )
        return batch

    # --- Import ---

    def import_batch(self, batch: Batch, dry_run: bool = False) -> BatchResult:
        url = f"{self.base_url}/admin/data/import"
        body = {**batch_to_dict(batch), "dryRun": dry_run}
        try:
            resp = self.session.post(url, json=body, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as exc:
            raise PersistenceError(f"{self.name}: import failed: {exc}") from exc
        self._check_auth(resp)
        if not resp.ok:
            raise PersistenceError(f"{self.name}: import returned HTTP {resp.status_code}: {_error_detail(resp)}")
        try:
            return result_from_dict(resp.json())
        except ValueError as exc:
            raise PersistenceError(f"{self.name}: import returned invalid JSON") from exc


def _error_detail(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict):
        return body.get("detail") or body.get("message") or str(body)[:200]
    return str(body)[:200]
