# models/facebook.py
from enum import Enum

from tortoise import fields, models


class LeadStatus(str, Enum):
    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    CONVERTED = "converted"


class FacebookIntegration(models.Model):
    """
    A user's link to one Facebook Page.
    Re-connecting the same page updates the row instead of adding a new one.
    """
    id = fields.IntField(pk=True)
    user = fields.ForeignKeyField("models.User", related_name="facebook_integrations")
    facebook_user_id = fields.CharField(max_length=64, null=True)
    page_id = fields.CharField(max_length=64, index=True)
    page_name = fields.CharField(max_length=255, null=True)
    access_token = fields.TextField()  # page token when Facebook returns one, else the user token
    permissions = fields.JSONField(default=list)
    token_expires_at = fields.DatetimeField(null=True)
    is_active = fields.BooleanField(default=True)
    last_synced_at = fields.DatetimeField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    insights = fields.ReverseRelation["FacebookInsight"]
    leads = fields.ReverseRelation["FacebookLead"]

    class Meta:
        table = "facebook_integrations"
        unique_together = (("user", "page_id"),)


class FacebookInsight(models.Model):
    """
    One metric value for one integration over one period.
    """
    id = fields.IntField(pk=True)
    integration = fields.ForeignKeyField("models.FacebookIntegration", related_name="insights")
    metric_name = fields.CharField(max_length=64)
    metric_value = fields.FloatField(default=0)
    metric_period = fields.CharField(max_length=32, default="day")
    date_start = fields.DateField()
    date_end = fields.DateField()
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "facebook_insights"
        unique_together = (("integration", "metric_name", "metric_period", "date_start", "date_end"),)


class FacebookLead(models.Model):
    """
    One Lead Ads form submission. `status` is owned by the user, not by the sync.
    """
    id = fields.IntField(pk=True)
    integration = fields.ForeignKeyField("models.FacebookIntegration", related_name="leads")
    facebook_lead_id = fields.CharField(max_length=64, unique=True)
    form_id = fields.CharField(max_length=64)
    form_name = fields.CharField(max_length=255, null=True)
    lead_data = fields.JSONField(default=dict)
    created_time = fields.DatetimeField(null=True)
    status = fields.CharEnumField(LeadStatus, default=LeadStatus.NEW)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "facebook_leads"

    def __str__(self):
        return f"{self.facebook_lead_id} ({self.status})"
