from tortoise import fields, models


class CartItem(models.Model):
    id = fields.IntField(primary_key=True)
    user_id = fields.CharField(max_length=64)
    product_id = fields.IntField()
    quantity = fields.IntField()
    # Set while the line is held by an order that has not been paid yet
    reserved_order_id = fields.IntField(null=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "cart_items"
        unique_together = (("user_id", "product_id"),)
        indexes = [
            ("reserved_order_id",),
        ]
