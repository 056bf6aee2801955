# integrations/facebook.py
from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlencode

from tortoise.exceptions import BaseORMException

from helpers.facebook_graph import FacebookGraph
from helpers.facebook_store import FacebookStore
from helpers.formatting import metric_display_name
from helpers.settings import Settings
from integrations.base import (
    BaseIntegration,
    IntegrationError,
    IntegrationLead,
    IntegrationMetric,
    IntegrationStatus,
)
from models.facebook import FacebookIntegration

logger = logging.getLogger("facebook")

FACEBOOK_PERMISSIONS = (
    "pages_show_list",
    "pages_read_engagement",
    "pages_manage_metadata",
    "ads_read",
    "leads_retrieval",
)

INSIGHT_METRICS = (
    "page_impressions",
    "page_reach",
    "page_engaged_users",
    "page_post_engagements",
    "page_clicks",
    "page_fans",
)

INSIGHTS_WINDOW_DAYS = 30
LEAD_SOURCE = "Facebook Lead Ads"

# Redirect outcome codes read by the dashboard banner
CONNECTED = "facebook_connected"
AUTH_FAILED = "facebook_auth_failed"
MISSING_PARAMETERS = "missing_parameters"
TOKEN_EXCHANGE_FAILED = "token_exchange_failed"
USER_NOT_FOUND = "user_not_found"
INTEGRATION_SAVE_FAILED = "integration_save_failed"
NO_PAGES_FOUND = "no_pages_found"
CALLBACK_FAILED = "callback_failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_number(v: Any) -> float:
    if isinstance(v, bool):
        return 0
    if isinstance(v, (int, float)):
        return v
    try:
        return float(v)
    except (TypeError, ValueError):
        return 0


def _day(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value).split("T")[0])
    except ValueError:
        return None


def parse_graph_time(value: Optional[str]) -> Optional[datetime]:
    """
    Graph timestamps look like 2024-03-01T12:30:00+0000.
    """
    if not value:
        return None
    for fmt in ("%Y-%m-%dT%H:%M:%S%z", "%Y-%m-%dT%H:%M:%S.%f%z"):
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def flatten_insight_points(data: List[Dict[str, Any]], since: date, until: date) -> List[Dict[str, Any]]:
    """
    Turn an insights `data` array into flat points.
    A value without `end_time` is attributed to the whole window.
    """
    points: List[Dict[str, Any]] = []
    for data_point in data or []:
        period = data_point.get("period") or "day"
        for value in data_point.get("values") or []:
            day = _day(value.get("end_time"))
            points.append(
                {
                    "date_start": day or since,
                    "date_end": day or until,
                    "value": _as_number(value.get("value") or 0),
                    "period": period,
                }
            )
    return points


def normalize_lead_fields(field_data: Optional[List[Dict[str, Any]]]) -> Dict[str, Any]:
    """
    [{name, values[]}] -> {name: first value}; fields without a usable value are dropped.
    """
    out: Dict[str, Any] = {}
    for f in field_data or []:
        name = f.get("name")
        vals = f.get("values") or []
        if name and vals and vals[0] is not None:
            out[name] = vals[0]
    return out


class FacebookAdapter(BaseIntegration):
    """
    Facebook Pages + Lead Ads integration.

    Owns the OAuth connect/callback flow, the insights and lead syncs, and the
    read side used by the dashboard. Graph client, settings and store are passed
    in so the whole flow can run against fakes.
    """

    name = "facebook"
    display_name = "Facebook"
    description = "Facebook Marketing API integration for page metrics and lead ads"
    icon = "Facebook"
    color = "#1877F2"

    def __init__(
        self,
        graph: FacebookGraph,
        settings: Settings,
        store: Optional[FacebookStore] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self.graph = graph
        self.settings = settings
        self.store = store or FacebookStore()
        self._today = today or (lambda: _utcnow().date())

    # ---------- CONTRACT ----------
    async def connect(self, user_id: str) -> str:
        return self.graph.build_oauth_url(
            redirect_uri=self.settings.facebook_redirect_uri,
            scope=FACEBOOK_PERMISSIONS,
            state=user_id,
        )

    async def disconnect(self, integration_id: int) -> None:
        try:
            updated = await self.store.deactivate_integration(integration_id)
        except BaseORMException as e:
            raise IntegrationError(f"Failed to disconnect integration: {e}") from e
        if not updated:
            raise IntegrationError(f"Failed to disconnect integration: {integration_id} not found")
        logger.info("disconnected integration=%s", integration_id)

    async def get_metrics(self, integration_id: int) -> List[IntegrationMetric]:
        since = self._today() - timedelta(days=INSIGHTS_WINDOW_DAYS)
        try:
            rows = await self.store.fetch_insights(integration_id, since=since, newest_first=True)
        except BaseORMException as e:
            raise IntegrationError(f"Failed to load metrics: {e}") from e

        grouped: Dict[str, List[Any]] = {}
        for row in rows:
            grouped.setdefault(row.metric_name, []).append(row)

        metrics: List[IntegrationMetric] = []
        for metric_name, data in grouped.items():
            latest = data[0].metric_value
            previous = data[1].metric_value if len(data) > 1 else 0
            change = latest - previous
            metrics.append(
                IntegrationMetric(
                    name=metric_display_name(metric_name),
                    value=latest,
                    change=change,
                    change_type="increase" if change >= 0 else "decrease",
                    period=data[0].metric_period,
                    date=data[0].date_start.isoformat(),
                )
            )
        return metrics

    async def get_leads(self, integration_id: int) -> List[IntegrationLead]:
        try:
            leads = await self.store.fetch_leads([integration_id])
        except BaseORMException as e:
            raise IntegrationError(f"Failed to load leads: {e}") from e
        return [to_integration_lead(lead) for lead in leads]

    async def is_connected(self, user_id: str) -> bool:
        user = await self.store.find_user_by_uid(user_id)
        if not user:
            return False
        return await self.store.active_integration_for_user(user.id) is not None

    async def get_connection_status(self, user_id: str) -> IntegrationStatus:
        try:
            user = await self.store.find_user_by_uid(user_id)
            if not user:
                return IntegrationStatus(is_connected=False, error="User not found")
            integ = await self.store.active_integration_for_user(user.id)
        except BaseORMException as e:
            return IntegrationStatus(is_connected=False, error=str(e))
        if not integ:
            return IntegrationStatus(is_connected=False)
        last_sync = integ.last_synced_at or integ.updated_at
        return IntegrationStatus(
            is_connected=True,
            connection_id=integ.id,
            account_name=integ.page_name,
            account_id=integ.page_id,
            last_sync=last_sync.isoformat() if last_sync else None,
        )

    # ---------- OAUTH CALLBACK ----------
    def dashboard_redirect(self, **params: str) -> str:
        return f"{self.settings.dashboard_url}?{urlencode(params)}"

    async def handle_callback(
        self, code: Optional[str], state: Optional[str], error: Optional[str] = None
    ) -> str:
        """
        Finish the OAuth flow and return where to send the browser.
        Every outcome is a dashboard URL carrying `success=` or `error=`; nothing raises.
        """
        if error:
            logger.warning("oauth denied state=%s error=%s", state, error)
            return self.dashboard_redirect(error=AUTH_FAILED)

        if not code or not state:
            logger.warning("oauth callback missing parameters code=%s state=%s", bool(code), bool(state))
            return self.dashboard_redirect(error=MISSING_PARAMETERS)

        try:
            outcome = await self._complete_connection(code, state)
        except Exception:
            logger.exception("oauth callback failed state=%s", state)
            return self.dashboard_redirect(error=CALLBACK_FAILED)

        if outcome == CONNECTED:
            return self.dashboard_redirect(success=CONNECTED)
        return self.dashboard_redirect(error=outcome)

    async def _complete_connection(self, code: str, state: str) -> str:
        token_data = await self.graph.exchange_code_for_token(
            code=code, redirect_uri=self.settings.facebook_redirect_uri
        )
        if token_data.get("error") or not token_data.get("access_token"):
            logger.warning("oauth token exchange failed state=%s error=%s", state, token_data.get("error"))
            return TOKEN_EXCHANGE_FAILED

        user_token = token_data["access_token"]
        me = await self.graph.get_me(user_token)
        pages = await self.graph.get_user_pages(user_token)

        page_list = pages.get("data") or []
        if not page_list:
            logger.warning("oauth no pages state=%s", state)
            return NO_PAGES_FOUND

        # First page wins; there is no page picker in this flow.
        page = page_list[0]

        user = await self.store.find_user_by_uid(state)
        if not user:
            logger.warning("oauth unknown user state=%s", state)
            return USER_NOT_FOUND

        expires_at = None
        expires_in = token_data.get("expires_in")
        if expires_in:
            try:
                expires_at = _utcnow() + timedelta(seconds=int(expires_in))
            except (TypeError, ValueError):
                expires_at = None

        try:
            integ = await self.store.upsert_integration(
                user.id,
                str(page.get("id")),
                facebook_user_id=me.get("id"),
                page_name=page.get("name"),
                access_token=page.get("access_token") or user_token,
                permissions=list(FACEBOOK_PERMISSIONS),
                token_expires_at=expires_at,
                is_active=True,
            )
        except BaseORMException:
            logger.exception("oauth integration save failed user=%s page=%s", user.id, page.get("id"))
            return INTEGRATION_SAVE_FAILED

        logger.info("oauth success user=%s page=%s integration=%s", user.id, integ.page_id, integ.id)
        return CONNECTED

    # ---------- SYNC ----------
    def insights_window(self) -> Tuple[date, date]:
        until = self._today()
        return until - timedelta(days=INSIGHTS_WINDOW_DAYS), until

    async def _fetch_metric(
        self, integ: FacebookIntegration, metric: str, since: date, until: date
    ) -> Tuple[str, List[Dict[str, Any]]]:
        try:
            body = await self.graph.get_page_insights(integ.page_id, metric, since, until, integ.access_token)
        except Exception as e:
            logger.error("insights fetch failed integration=%s metric=%s error=%s", integ.id, metric, e)
            return metric, []
        if body.get("error"):
            logger.error("insights fetch failed integration=%s metric=%s error=%s", integ.id, metric, body["error"])
            return metric, []
        return metric, body.get("data") or []

    async def sync_insights(self, integ: FacebookIntegration) -> int:
        """
        Pull the trailing window for every metric and upsert the points.
        Returns how many points were written.
        """
        since, until = self.insights_window()
        results = await asyncio.gather(
            *(self._fetch_metric(integ, metric, since, until) for metric in INSIGHT_METRICS)
        )

        written = 0
        for metric, data in results:
            points = flatten_insight_points(data, since, until)
            try:
                for p in points:
                    await self.store.upsert_insight(
                        integ.id, metric, p["period"], p["date_start"], p["date_end"], p["value"]
                    )
                    written += 1
            except BaseORMException as e:
                logger.error("insights save failed integration=%s metric=%s error=%s", integ.id, metric, e)
        logger.info("insights synced integration=%s points=%s", integ.id, written)
        return written

    async def fetch_insights(self, integ: FacebookIntegration) -> Dict[str, List[Dict[str, Any]]]:
        """
        Stored points inside the window, grouped by metric and ordered by date.
        """
        since, until = self.insights_window()
        rows = await self.store.fetch_insights(integ.id, since=since, until=until)
        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for row in rows:
            grouped.setdefault(row.metric_name, []).append(
                {"date": row.date_start.isoformat(), "value": row.metric_value, "period": row.metric_period}
            )
        return grouped

    async def sync_leads(self, integ: FacebookIntegration) -> int:
        try:
            forms = await self.graph.get_leadgen_forms(integ.page_id, integ.access_token)
        except Exception as e:
            logger.error("leadgen forms fetch failed integration=%s error=%s", integ.id, e)
            return 0
        if forms.get("error"):
            logger.error("leadgen forms fetch failed integration=%s error=%s", integ.id, forms["error"])
            return 0

        written = 0
        for form in forms.get("data") or []:
            try:
                written += await self._sync_form_leads(integ, form)
            except Exception as e:
                logger.error("lead sync failed integration=%s form=%s error=%s", integ.id, form.get("id"), e)
        logger.info("leads synced integration=%s leads=%s", integ.id, written)
        return written

    async def _sync_form_leads(self, integ: FacebookIntegration, form: Dict[str, Any]) -> int:
        form_id = str(form.get("id"))
        body = await self.graph.get_form_leads(form_id, integ.access_token)
        if body.get("error"):
            logger.error("leads fetch failed integration=%s form=%s error=%s", integ.id, form_id, body["error"])
            return 0

        written = 0
        for lead in body.get("data") or []:
            await self.store.upsert_lead(
                integration_id=integ.id,
                facebook_lead_id=str(lead.get("id")),
                form_id=form_id,
                form_name=form.get("name"),
                lead_data=normalize_lead_fields(lead.get("field_data")),
                created_time=parse_graph_time(lead.get("created_time")),
            )
            written += 1
        return written

    async def sync_data(self, integration_id: int) -> Dict[str, int]:
        """
        Full sync for one integration. Raises IntegrationError only when the
        integration itself can't be loaded; per-metric and per-form failures are
        logged and skipped.
        """
        try:
            integ = await self.store.get_integration(integration_id)
        except BaseORMException as e:
            raise IntegrationError(f"Failed to load integration: {e}") from e
        if not integ:
            raise IntegrationError("Integration not found")

        insights = await self.sync_insights(integ)
        leads = await self.sync_leads(integ)
        try:
            await self.store.mark_synced(integ.id, _utcnow())
        except BaseORMException as e:
            logger.error("mark synced failed integration=%s error=%s", integ.id, e)
        return {"insights": insights, "leads": leads}

    async def active_integration(self, user_id: str) -> FacebookIntegration:
        """
        The user's active connection, or IntegrationError naming what is missing.
        """
        user = await self.store.find_user_by_uid(user_id)
        if not user:
            raise IntegrationError("User not found")
        integ = await self.store.active_integration_for_user(user.id)
        if not integ:
            raise IntegrationError("Facebook integration not found")
        return integ


def _first_text(data: Dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value:
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
    return None


def to_integration_lead(lead) -> IntegrationLead:
    data = lead.lead_data if isinstance(lead.lead_data, dict) else {}
    return IntegrationLead(
        id=str(lead.id),
        source=LEAD_SOURCE,
        name=_first_text(data, "name", "full_name"),
        email=_first_text(data, "email"),
        phone=_first_text(data, "phone_number", "phone"),
        data=data,
        created_at=lead.created_time.isoformat() if lead.created_time else None,
        status=getattr(lead.status, "value", lead.status),
    )
