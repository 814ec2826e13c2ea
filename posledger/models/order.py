from enum import Enum
from tortoise import fields, models


class OrderStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"  # Every checkout lands here
    CANCELED = "canceled"


class FulfillmentType(str, Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"
    TABLE = "table"

    @classmethod
    def _missing_(cls, value):
        # Values written by the older Portuguese front end
        legacy = {"retirada": cls.PICKUP, "entrega": cls.DELIVERY, "mesa": cls.TABLE}
        if isinstance(value, str):
            return legacy.get(value.lower())
        return None


class PaymentMethod(str, Enum):
    CASH = "Dinheiro"
    PIX = "PIX"
    DEBIT = "Debito"
    CREDIT = "Credito"


class Order(models.Model):
    id = fields.CharField(primary_key=True, max_length=64)
    account_id = fields.CharField(max_length=64)
    date = fields.DatetimeField()
    customer_name = fields.CharField(max_length=255, default="")
    customer_phone = fields.CharField(max_length=32, null=True)
    delivery_type = fields.CharEnumField(FulfillmentType, default=FulfillmentType.PICKUP)
    address = fields.TextField(null=True) # Delivery only
    reference = fields.TextField(null=True)
    payment_method = fields.CharField(max_length=32, default=PaymentMethod.CASH.value)
    change_for = fields.FloatField(null=True)
    items = fields.JSONField(default=list) # Cart lines as JSON
    total_amount = fields.FloatField(default=0)
    status = fields.CharEnumField(OrderStatus, default=OrderStatus.COMPLETED)
    # {ingredient_id: quantity deducted at checkout}; null for legacy orders
    consumption = fields.JSONField(null=True)

    class Meta:
        table = "orders"
        indexes = [
            ("account_id",),
            ("account_id", "date"),
            ("account_id", "customer_phone"),
        ]
