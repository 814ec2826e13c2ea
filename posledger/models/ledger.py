from enum import Enum
from tortoise import fields, models


class MovementType(str, Enum):
    ENTRY = "entry"
    LOSS = "loss"
    SALE = "sale"
    ADJUSTMENT = "adjustment"


class Revenue(models.Model):
    id = fields.CharField(primary_key=True, max_length=64)
    account_id = fields.CharField(max_length=64)
    date = fields.DatetimeField()
    description = fields.TextField(default="")
    amount = fields.FloatField(default=0)
    category = fields.CharField(max_length=32, default="Outros")
    payment_method = fields.CharField(max_length=32, default="Dinheiro")
    order_id = fields.CharField(max_length=64, null=True) # Set for rows created by checkout

    class Meta:
        table = "revenues"
        indexes = [
            ("account_id",),
            ("account_id", "order_id"),
        ]


class Expense(models.Model):
    id = fields.CharField(primary_key=True, max_length=64)
    account_id = fields.CharField(max_length=64)
    date = fields.DatetimeField()
    paid_date = fields.DatetimeField(null=True)
    amount = fields.FloatField(default=0)
    category = fields.CharField(max_length=32, default="Outros")
    description = fields.TextField(default="")
    is_recurring = fields.BooleanField(default=False)
    status = fields.CharField(max_length=16, default="paid")
    payment_method = fields.CharField(max_length=32, default="Dinheiro")
    employee_id = fields.CharField(max_length=64, null=True)

    class Meta:
        table = "expenses"
        indexes = [
            ("account_id",),
        ]


class StockMovement(models.Model):
    """Append-only audit row for one quantity change of one ingredient."""
    id = fields.CharField(primary_key=True, max_length=64)
    account_id = fields.CharField(max_length=64)
    ingredient_id = fields.CharField(max_length=64)
    type = fields.CharEnumField(MovementType, max_length=16)
    quantity = fields.FloatField(default=0)
    date = fields.DatetimeField()
    reason = fields.TextField(null=True)
    cost = fields.FloatField(null=True)
    order_id = fields.CharField(max_length=64, null=True) # Set for sale rows

    class Meta:
        table = "stock_movements"
        indexes = [
            ("account_id",),
            ("account_id", "ingredient_id"),
            ("account_id", "order_id"),
        ]
