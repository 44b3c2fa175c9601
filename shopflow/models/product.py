from tortoise import fields, models


class Product(models.Model):
    id = fields.IntField(primary_key=True)
    name = fields.CharField(max_length=255)
    price = fields.BigIntField()
    stock = fields.IntField(default=0)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "products"


class StockReservation(models.Model):
    """
    Units held for an order. Written in the same transaction as the stock
    deduction so a later payment failure knows exactly what to give back.
    """
    id = fields.IntField(primary_key=True)
    order_id = fields.IntField()
    product_id = fields.IntField()
    quantity = fields.IntField()
    released = fields.BooleanField(default=False)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "stock_reservations"
        indexes = [
            ("order_id",),
        ]
