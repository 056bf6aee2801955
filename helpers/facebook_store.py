# helpers/facebook_store.py
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from fastapi import Request

from models.auth import User
from models.facebook import FacebookInsight, FacebookIntegration, FacebookLead


class FacebookStore:
    """
    Persistence handle for users, Facebook integrations, insights and leads.

    Every write is an upsert on the table's declared uniqueness key, so repeated
    or overlapping syncs converge on the same rows (last write wins per key).
    """

    # ---------- USERS ----------
    async def find_user_by_uid(self, external_uid: str) -> Optional[User]:
        return await User.get_or_none(external_uid=external_uid)

    async def upsert_user(
        self,
        external_uid: str,
        email: str,
        display_name: Optional[str] = None,
        photo_url: Optional[str] = None,
    ) -> Tuple[User, bool]:
        return await User.update_or_create(
            defaults={"email": email, "display_name": display_name, "photo_url": photo_url},
            external_uid=external_uid,
        )

    # ---------- INTEGRATIONS ----------
    async def get_integration(self, integration_id: int) -> Optional[FacebookIntegration]:
        return await FacebookIntegration.get_or_none(id=integration_id)

    async def active_integration_for_user(self, user_id: int) -> Optional[FacebookIntegration]:
        return (
            await FacebookIntegration.filter(user_id=user_id, is_active=True)
            .order_by("-updated_at", "-id")
            .first()
        )

    async def active_integrations_for_user(self, user_id: int) -> List[FacebookIntegration]:
        return await FacebookIntegration.filter(user_id=user_id, is_active=True).order_by("id")

    async def upsert_integration(self, user_id: int, page_id: str, **values: Any) -> FacebookIntegration:
        integ, _ = await FacebookIntegration.update_or_create(
            defaults=values, user_id=user_id, page_id=page_id
        )
        return integ

    async def deactivate_integration(self, integration_id: int) -> int:
        return await FacebookIntegration.filter(id=integration_id).update(is_active=False)

    async def mark_synced(self, integration_id: int, when: datetime) -> None:
        await FacebookIntegration.filter(id=integration_id).update(last_synced_at=when)

    # ---------- INSIGHTS ----------
    async def upsert_insight(
        self,
        integration_id: int,
        metric_name: str,
        metric_period: str,
        date_start: date,
        date_end: date,
        metric_value: float,
    ) -> FacebookInsight:
        row, _ = await FacebookInsight.update_or_create(
            defaults={"metric_value": metric_value},
            integration_id=integration_id,
            metric_name=metric_name,
            metric_period=metric_period,
            date_start=date_start,
            date_end=date_end,
        )
        return row

    async def fetch_insights(
        self,
        integration_id: int,
        since: date,
        until: Optional[date] = None,
        newest_first: bool = False,
    ) -> List[FacebookInsight]:
        q = FacebookInsight.filter(integration_id=integration_id, date_start__gte=since)
        if until is not None:
            q = q.filter(date_end__lte=until)
        order = ("-date_start", "metric_name") if newest_first else ("date_start", "metric_name")
        return await q.order_by(*order)

    # ---------- LEADS ----------
    async def upsert_lead(
        self,
        integration_id: int,
        facebook_lead_id: str,
        form_id: str,
        form_name: Optional[str],
        lead_data: Dict[str, Any],
        created_time: Optional[datetime],
    ) -> Tuple[FacebookLead, bool]:
        # status is left out of defaults: inserts take the model default (new),
        # updates keep whatever the user has moved the lead to.
        return await FacebookLead.update_or_create(
            defaults={
                "integration_id": integration_id,
                "form_id": form_id,
                "form_name": form_name,
                "lead_data": lead_data,
                "created_time": created_time,
            },
            facebook_lead_id=facebook_lead_id,
        )

    async def fetch_leads(self, integration_ids: Sequence[int]) -> List[FacebookLead]:
        if not integration_ids:
            return []
        return await FacebookLead.filter(integration_id__in=list(integration_ids)).order_by(
            "-created_time", "-id"
        )

    async def get_user_lead(self, user_id: int, lead_id: int) -> Optional[FacebookLead]:
        return await FacebookLead.get_or_none(id=lead_id, integration__user_id=user_id)


# ---------- FastAPI dependency ----------
def get_store(request: Request) -> FacebookStore:
    return request.app.state.store
