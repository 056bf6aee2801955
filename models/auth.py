from tortoise import fields
from tortoise.models import Model


class User(Model):
    """
    A dashboard account, keyed by the identity provider's uid.
    Rows are created on the first sign-in sync and refreshed on every later one.
    """
    id = fields.IntField(primary_key=True)
    external_uid = fields.CharField(max_length=128, unique=True)
    email = fields.CharField(max_length=255)
    display_name = fields.CharField(max_length=255, null=True)
    photo_url = fields.CharField(max_length=1024, null=True)

    facebook_integrations = fields.ReverseRelation["FacebookIntegration"]

    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "users"

    def __str__(self) -> str:
        return f"<User #{self.id} {self.email}>"
