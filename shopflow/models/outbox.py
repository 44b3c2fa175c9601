from tortoise import fields, models


class OutboxMessage(models.Model):
    """
    The Outbox table stores events atomically with the database transaction.
    Rows are never deleted; `published` flips to True once the entry has been
    appended to its stream.
    """
    id = fields.IntField(primary_key=True)
    aggregate_type = fields.CharField(max_length=64) # e.g., 'order', 'delivery'
    aggregate_id = fields.IntField() # ID of the entity whose status changed
    related_id = fields.IntField(null=True) # e.g. the order a delivery belongs to
    status = fields.CharField(max_length=64) # Event type announced, e.g. 'delivered'
    stream = fields.CharField(max_length=128) # e.g., 'stream:delivery:delivered'
    payload = fields.JSONField() # Flat field map appended to the stream
    published = fields.BooleanField(default=False)
    attempts = fields.IntField(default=0)
    created_at = fields.DatetimeField(auto_now_add=True)
    published_at = fields.DatetimeField(null=True)

    class Meta:
        table = "outbox_messages"
        indexes = [
            ("published", "id"),
        ]
