from tortoise import fields, models


class ProcessedEvent(models.Model):
    """
    Table used for Idempotency in Consumers. Stores '<group>:<stream>:<entry id>'
    so a redelivered entry is handled only once per consumer group.
    """
    id = fields.IntField(primary_key=True)
    event_key = fields.CharField(max_length=255, unique=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "processed_events"
