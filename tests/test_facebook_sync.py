"""Tests for integrations.facebook -- insights / lead sync and the read side."""
from datetime import date, datetime, timezone

import httpx
import pytest
from tortoise.exceptions import OperationalError

from helpers.facebook_store import FacebookStore
from integrations.base import IntegrationError
from integrations.facebook import (
    INSIGHT_METRICS,
    FacebookAdapter,
    flatten_insight_points,
    normalize_lead_fields,
    parse_graph_time,
)
from models.facebook import FacebookInsight, FacebookIntegration, FacebookLead, LeadStatus

from conftest import PAGE_ID, TODAY, insights_body


# ---------------------------------------------------------------------------
# normalization helpers
# ---------------------------------------------------------------------------

class TestFlattenInsightPoints:

    def test_one_point_per_value(self):
        data = insights_body("page_reach", [("2024-03-29", 10), ("2024-03-30", 12)])["data"]
        points = flatten_insight_points(data, date(2024, 3, 1), date(2024, 3, 31))
        assert points == [
            {"date_start": date(2024, 3, 29), "date_end": date(2024, 3, 29), "value": 10, "period": "day"},
            {"date_start": date(2024, 3, 30), "date_end": date(2024, 3, 30), "value": 12, "period": "day"},
        ]

    def test_missing_end_time_uses_window(self):
        data = [{"period": "lifetime", "values": [{"value": 7}]}]
        points = flatten_insight_points(data, date(2024, 3, 1), date(2024, 3, 31))
        assert points == [
            {"date_start": date(2024, 3, 1), "date_end": date(2024, 3, 31), "value": 7, "period": "lifetime"},
        ]

    def test_defaults_for_missing_value_and_period(self):
        data = [{"values": [{"end_time": "2024-03-02T07:00:00+0000"}]}]
        points = flatten_insight_points(data, date(2024, 3, 1), date(2024, 3, 31))
        assert points[0]["value"] == 0
        assert points[0]["period"] == "day"

    def test_non_numeric_value_becomes_zero(self):
        data = [{"period": "day", "values": [{"value": {"BR": 3}, "end_time": "2024-03-02T07:00:00+0000"}]}]
        assert flatten_insight_points(data, date(2024, 3, 1), date(2024, 3, 31))[0]["value"] == 0

    def test_empty(self):
        assert flatten_insight_points([], date(2024, 3, 1), date(2024, 3, 31)) == []


class TestNormalizeLeadFields:

    def test_first_value_wins(self):
        fields = [{"name": "email", "values": ["a@example.com", "b@example.com"]}]
        assert normalize_lead_fields(fields) == {"email": "a@example.com"}

    def test_fields_without_values_are_omitted(self):
        fields = [{"name": "city", "values": []}, {"name": "zip"}, {"name": "full_name", "values": ["Ana"]}]
        assert normalize_lead_fields(fields) == {"full_name": "Ana"}

    def test_null_first_value_is_dropped(self):
        fields = [{"name": "opt_in", "values": [None]}, {"name": "email", "values": ["x@y.z"]}]
        assert normalize_lead_fields(fields) == {"email": "x@y.z"}

    def test_none(self):
        assert normalize_lead_fields(None) == {}


class TestParseGraphTime:

    def test_graph_offset_format(self):
        assert parse_graph_time("2024-03-10T12:00:00+0000") == datetime(2024, 3, 10, 12, tzinfo=timezone.utc)

    def test_iso_format(self):
        assert parse_graph_time("2024-03-10T12:00:00+00:00") == datetime(2024, 3, 10, 12, tzinfo=timezone.utc)

    def test_garbage(self):
        assert parse_graph_time("yesterday") is None
        assert parse_graph_time(None) is None


# ---------------------------------------------------------------------------
# insights sync
# ---------------------------------------------------------------------------

class TestSyncInsights:

    async def test_persists_every_point(self, adapter, integration, stub_insights):
        stub_insights()
        written = await adapter.sync_insights(integration)
        assert written == len(INSIGHT_METRICS) * 2
        assert await FacebookInsight.filter(integration_id=integration.id).count() == 12

    async def test_requests_trailing_thirty_days(self, adapter, integration, stub_insights, graph_stub):
        stub_insights()
        await adapter.sync_insights(integration)
        params = graph_stub.requests[0].url.params
        assert params["since"] == "2024-03-01"
        assert params["until"] == TODAY.isoformat()
        assert params["access_token"] == "PAGE-TOKEN"

    async def test_resync_is_idempotent(self, adapter, integration, stub_insights):
        stub_insights()
        await adapter.sync_insights(integration)
        await adapter.sync_insights(integration)
        assert await FacebookInsight.filter(integration_id=integration.id).count() == 12

    async def test_latest_sync_wins(self, adapter, integration, stub_insights):
        stub_insights()
        await adapter.sync_insights(integration)
        stub_insights(values=(("2024-03-29", 10), ("2024-03-30", 99)))
        await adapter.sync_insights(integration)

        row = await FacebookInsight.get(
            integration_id=integration.id, metric_name="page_reach", date_start=date(2024, 3, 30)
        )
        assert row.metric_value == 99
        assert await FacebookInsight.filter(integration_id=integration.id).count() == 12

    async def test_one_failing_metric_does_not_stop_the_others(
        self, adapter, integration, stub_insights, graph_stub
    ):
        stub_insights()
        graph_stub.routes[("GET", f"{PAGE_ID}/insights/page_clicks")] = httpx.ReadTimeout("timed out")

        written = await adapter.sync_insights(integration)

        assert written == (len(INSIGHT_METRICS) - 1) * 2
        assert await FacebookInsight.filter(metric_name="page_clicks").count() == 0
        assert await FacebookInsight.filter(metric_name="page_reach").count() == 2

    async def test_graph_error_body_yields_no_points(self, adapter, integration, stub_insights, graph_stub):
        stub_insights()
        graph_stub.routes[("GET", f"{PAGE_ID}/insights/page_fans")] = {"error": {"message": "(#100) invalid metric"}}
        written = await adapter.sync_insights(integration)
        assert written == 10
        assert await FacebookInsight.filter(metric_name="page_fans").count() == 0

    async def test_all_metrics_fail(self, adapter, integration):
        # nothing routed: every request answers with a Graph error
        assert await adapter.sync_insights(integration) == 0

    async def test_fetch_groups_by_metric_in_date_order(self, adapter, integration, stub_insights):
        stub_insights(values=(("2024-03-30", 12), ("2024-03-29", 10)))
        await adapter.sync_insights(integration)

        grouped = await adapter.fetch_insights(integration)
        assert set(grouped) == set(INSIGHT_METRICS)
        assert grouped["page_reach"] == [
            {"date": "2024-03-29", "value": 10, "period": "day"},
            {"date": "2024-03-30", "value": 12, "period": "day"},
        ]

    async def test_fetch_ignores_points_outside_window(self, adapter, integration):
        await FacebookInsight.create(
            integration=integration, metric_name="page_reach", metric_value=5,
            metric_period="day", date_start=date(2024, 1, 1), date_end=date(2024, 1, 1),
        )
        assert await adapter.fetch_insights(integration) == {}


# ---------------------------------------------------------------------------
# lead sync
# ---------------------------------------------------------------------------

class TestSyncLeads:

    async def test_persists_leads_with_flat_fields(self, adapter, integration, stub_leads):
        stub_leads()
        assert await adapter.sync_leads(integration) == 2

        lead = await FacebookLead.get(facebook_lead_id="L1")
        assert lead.form_id == "F1"
        assert lead.form_name == "Spring promo"
        assert lead.lead_data == {
            "full_name": "Ana Souza",
            "email": "ana@example.com",
            "phone_number": "+5511999990000",
        }
        assert lead.status == LeadStatus.NEW
        assert lead.created_time is not None

    async def test_resync_keeps_one_row_per_lead(self, adapter, integration, stub_leads):
        stub_leads()
        await adapter.sync_leads(integration)
        await adapter.sync_leads(integration)
        assert await FacebookLead.filter(facebook_lead_id="L1").count() == 1
        assert await FacebookLead.all().count() == 2

    async def test_resync_does_not_reset_status(self, adapter, integration, stub_leads):
        stub_leads()
        await adapter.sync_leads(integration)
        await FacebookLead.filter(facebook_lead_id="L1").update(status=LeadStatus.QUALIFIED)

        await adapter.sync_leads(integration)

        lead = await FacebookLead.get(facebook_lead_id="L1")
        assert lead.status == LeadStatus.QUALIFIED

    async def test_resync_refreshes_sync_owned_fields(self, adapter, integration, stub_leads):
        stub_leads()
        await adapter.sync_leads(integration)
        stub_leads(leads=[{"id": "L1", "field_data": [{"name": "full_name", "values": ["Ana S. Souza"]}]}])
        await adapter.sync_leads(integration)

        lead = await FacebookLead.get(facebook_lead_id="L1")
        assert lead.lead_data == {"full_name": "Ana S. Souza"}

    async def test_null_field_value_keeps_leads_readable(self, adapter, integration, stub_leads):
        stub_leads(leads=[
            {"id": "L9", "field_data": [{"name": "opt_in", "values": [None]}, {"name": "email", "values": ["x@y.z"]}]}
        ])
        assert await adapter.sync_leads(integration) == 1

        leads = await adapter.get_leads(integration.id)
        assert len(leads) == 1
        assert leads[0].email == "x@y.z"
        assert leads[0].data == {"email": "x@y.z"}

    async def test_failing_form_is_skipped(self, adapter, integration, stub_leads, graph_stub):
        stub_leads()
        graph_stub.routes[("GET", f"{PAGE_ID}/leadgen_forms")] = {
            "data": [{"id": "BROKEN", "name": "Broken"}, {"id": "F1", "name": "Spring promo"}]
        }
        graph_stub.routes[("GET", "BROKEN/leads")] = httpx.ConnectError("connection reset")

        assert await adapter.sync_leads(integration) == 2

    async def test_forms_listing_failure(self, adapter, integration, graph_stub):
        graph_stub.routes[("GET", f"{PAGE_ID}/leadgen_forms")] = httpx.ConnectError("connection reset")
        assert await adapter.sync_leads(integration) == 0

    async def test_forms_listing_error_body(self, adapter, integration):
        assert await adapter.sync_leads(integration) == 0


# ---------------------------------------------------------------------------
# sync entry point
# ---------------------------------------------------------------------------

class TestSyncData:

    async def test_runs_both_syncs(self, adapter, integration, stub_insights, stub_leads):
        stub_insights()
        stub_leads()
        result = await adapter.sync_data(integration.id)
        assert result == {"insights": 12, "leads": 2}

        await integration.refresh_from_db()
        assert integration.last_synced_at is not None

    async def test_unknown_integration_raises(self, adapter, db):
        with pytest.raises(IntegrationError, match="not found"):
            await adapter.sync_data(12345)

    async def test_upstream_failures_do_not_raise(self, adapter, integration):
        assert await adapter.sync_data(integration.id) == {"insights": 0, "leads": 0}


# ---------------------------------------------------------------------------
# contract read side
# ---------------------------------------------------------------------------

class TestGetMetrics:

    async def test_latest_value_and_change(self, adapter, integration, stub_insights):
        stub_insights(values=(("2024-03-29", 10), ("2024-03-30", 12)))
        await adapter.sync_insights(integration)

        metrics = {m.name: m for m in await adapter.get_metrics(integration.id)}
        reach = metrics["Reach"]
        assert reach.value == 12
        assert reach.change == 2
        assert reach.change_type == "increase"
        assert reach.period == "day"
        assert reach.date == "2024-03-30"
        assert len(metrics) == len(INSIGHT_METRICS)

    async def test_decrease(self, adapter, integration, stub_insights):
        stub_insights(values=(("2024-03-29", 20), ("2024-03-30", 5)))
        await adapter.sync_insights(integration)
        metrics = {m.name: m for m in await adapter.get_metrics(integration.id)}
        assert metrics["Clicks"].change == -15
        assert metrics["Clicks"].change_type == "decrease"

    async def test_no_rows(self, adapter, integration):
        assert await adapter.get_metrics(integration.id) == []

    async def test_persistence_error_raises(self, graph, settings, db):
        class BrokenStore(FacebookStore):
            async def fetch_insights(self, *args, **kwargs):
                raise OperationalError("no such table")

        adapter = FacebookAdapter(graph=graph, settings=settings, store=BrokenStore(), today=lambda: TODAY)
        with pytest.raises(IntegrationError, match="metrics"):
            await adapter.get_metrics(1)


class TestGetLeads:

    async def test_irregular_stored_values(self, adapter, integration):
        await FacebookLead.create(
            integration=integration,
            facebook_lead_id="L7",
            form_id="F1",
            lead_data={"full_name": ["Ana", "Souza"], "email": None, "phone": 5511999990000, "extra": {"a": 1}},
        )
        leads = await adapter.get_leads(integration.id)
        assert len(leads) == 1
        lead = leads[0]
        assert lead.name is None
        assert lead.email is None
        assert lead.phone == "5511999990000"
        assert lead.data["extra"] == {"a": 1}
        assert lead.created_at is None


    async def test_normalized_leads_newest_first(self, adapter, integration, stub_leads):
        stub_leads()
        await adapter.sync_leads(integration)

        leads = await adapter.get_leads(integration.id)
        assert [lead.data.get("full_name") for lead in leads] == ["Bruno Lima", "Ana Souza"]
        ana = leads[1]
        assert ana.source == "Facebook Lead Ads"
        assert ana.name == "Ana Souza"
        assert ana.email == "ana@example.com"
        assert ana.phone == "+5511999990000"
        assert ana.status == "new"
        assert ana.created_at.startswith("2024-03-10")

    async def test_persistence_error_raises(self, graph, settings, db):
        class BrokenStore(FacebookStore):
            async def fetch_leads(self, integration_ids):
                raise OperationalError("no such table")

        adapter = FacebookAdapter(graph=graph, settings=settings, store=BrokenStore())
        with pytest.raises(IntegrationError, match="leads"):
            await adapter.get_leads(1)


class TestConnectionState:

    async def test_not_connected_without_user(self, adapter, db):
        assert await adapter.is_connected("nobody") is False
        status = await adapter.get_connection_status("nobody")
        assert status.is_connected is False
        assert status.error == "User not found"

    async def test_not_connected_without_integration(self, adapter, user):
        assert await adapter.is_connected("uid-1") is False
        status = await adapter.get_connection_status("uid-1")
        assert status.is_connected is False
        assert status.error is None

    async def test_connected(self, adapter, integration):
        assert await adapter.is_connected("uid-1") is True
        status = await adapter.get_connection_status("uid-1")
        assert status.is_connected is True
        assert status.connection_id == integration.id
        assert status.account_name == "Acme Bakery"
        assert status.account_id == PAGE_ID
        assert status.last_sync is not None

    async def test_disconnect_soft_deletes(self, adapter, integration):
        await adapter.disconnect(integration.id)

        await integration.refresh_from_db()
        assert integration.is_active is False
        assert await adapter.is_connected("uid-1") is False

    async def test_disconnect_unknown_integration(self, adapter, db):
        with pytest.raises(IntegrationError):
            await adapter.disconnect(999)

    async def test_active_integration(self, adapter, integration):
        found = await adapter.active_integration("uid-1")
        assert found.id == integration.id

    async def test_active_integration_missing(self, adapter, user):
        with pytest.raises(IntegrationError, match="Facebook integration not found"):
            await adapter.active_integration("uid-1")
