# helpers/facebook_graph.py
from __future__ import annotations

from datetime import date
from typing import Any, Dict, Iterable, Optional

import httpx

from helpers.settings import get_env

DEFAULT_GRAPH_VERSION = "v18.0"


def _normalize_version(version: Optional[str]) -> str:
    v = (version or DEFAULT_GRAPH_VERSION).strip()
    if not v.startswith("v"):
        v = f"v{v}"
    return v


class FacebookGraphError(Exception):
    """Transport failure or an undecodable response from the Graph API."""


class FacebookGraph:
    """
    Lightweight async client for the Meta Graph API (OAuth, Pages, Insights, Lead Ads).

    Usage:
        graph = FacebookGraph.from_env()  # reads FACEBOOK_APP_ID, FACEBOOK_APP_SECRET, FACEBOOK_GRAPH_VERSION
        pages = await graph.get_user_pages(token)

    Provider-reported errors come back as the decoded `{"error": ...}` body;
    only transport failures raise FacebookGraphError.
    """

    def __init__(
        self,
        app_id: str,
        app_secret: str,
        version: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not app_id or not app_secret:
            raise RuntimeError("FacebookGraph requires app_id and app_secret")
        self.app_id = app_id
        self.app_secret = app_secret
        self.version = _normalize_version(version)
        self.GRAPH = f"https://graph.facebook.com/{self.version}"
        self.DIALOG = f"https://www.facebook.com/{self.version}/dialog/oauth"
        self._client = client or httpx.AsyncClient(timeout=30.0)

    @classmethod
    def from_env(cls, client: Optional[httpx.AsyncClient] = None) -> "FacebookGraph":
        """
        Create client using env vars:
          - FACEBOOK_APP_ID (required)
          - FACEBOOK_APP_SECRET (required)
          - FACEBOOK_GRAPH_VERSION (optional; defaults to v18.0)
        """
        return cls(
            app_id=get_env("FACEBOOK_APP_ID", required=True),
            app_secret=get_env("FACEBOOK_APP_SECRET", required=True),
            version=get_env("FACEBOOK_GRAPH_VERSION", DEFAULT_GRAPH_VERSION),
            client=client,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _send(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        try:
            r = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise FacebookGraphError(f"{method} {url} failed: {e}") from e
        try:
            body = r.json()
        except ValueError as e:
            raise FacebookGraphError(f"{method} {url} returned non-JSON body (status {r.status_code})") from e
        if not isinstance(body, dict):
            raise FacebookGraphError(f"{method} {url} returned unexpected payload: {body!r}")
        return body

    async def _get(self, path: str, access_token: str, **params) -> Dict[str, Any]:
        params["access_token"] = access_token
        return await self._send("GET", f"{self.GRAPH}/{path.lstrip('/')}", params=params)

    # ---------- OAUTH ----------
    def build_oauth_url(self, redirect_uri: str, scope: Iterable[str], state: str) -> str:
        """
        Login dialog URL; `state` round-trips back to the callback untouched.
        """
        params = {
            "client_id": self.app_id,
            "redirect_uri": redirect_uri,
            "scope": ",".join(scope),
            "response_type": "code",
            "state": state,
        }
        return f"{self.DIALOG}?{httpx.QueryParams(params)}"

    async def exchange_code_for_token(self, code: str, redirect_uri: str) -> Dict[str, Any]:
        """
        Exchange OAuth 'code' -> user access token (`access_token`, `expires_in`) or `{error}`.
        """
        data = {
            "client_id": self.app_id,
            "client_secret": self.app_secret,
            "redirect_uri": redirect_uri,
            "code": code,
        }
        return await self._send("POST", f"{self.GRAPH}/oauth/access_token", data=data)

    async def get_me(self, user_token: str) -> Dict[str, Any]:
        return await self._get("me", user_token)

    async def get_user_pages(self, user_token: str) -> Dict[str, Any]:
        """
        Returns pages (and page access tokens) the user manages.
        """
        return await self._get("me/accounts", user_token)

    # ---------- INSIGHTS ----------
    async def get_page_insights(
        self, page_id: str, metric: str, since: date, until: date, page_token: str
    ) -> Dict[str, Any]:
        return await self._get(
            f"{page_id}/insights/{metric}",
            page_token,
            since=since.isoformat(),
            until=until.isoformat(),
        )

    # ---------- LEADS ----------
    async def get_leadgen_forms(self, page_id: str, page_token: str) -> Dict[str, Any]:
        return await self._get(f"{page_id}/leadgen_forms", page_token)

    async def get_form_leads(self, form_id: str, page_token: str) -> Dict[str, Any]:
        return await self._get(f"{form_id}/leads", page_token)
