from tortoise import fields, models


class Ingredient(models.Model):
    id = fields.CharField(primary_key=True, max_length=64)
    account_id = fields.CharField(max_length=64)
    name = fields.CharField(max_length=255)
    category = fields.CharField(max_length=32, default="Outros")
    unit = fields.CharField(max_length=8, default="un")
    cost_per_unit = fields.FloatField(default=0)
    exit_price = fields.FloatField(default=0)
    # Mutated in place by entries, losses and sales; the movement log is the audit trail
    stock_quantity = fields.FloatField(default=0)
    min_stock = fields.FloatField(default=0) # For low stock warning

    class Meta:
        table = "ingredients"
        indexes = [
            ("account_id",),
        ]


class Product(models.Model):
    id = fields.CharField(primary_key=True, max_length=64)
    account_id = fields.CharField(max_length=64)
    name = fields.CharField(max_length=255)
    description = fields.TextField(default="")
    price = fields.FloatField(default=0)
    category = fields.CharField(max_length=32, default="Outros")
    # Nested structures are stored as JSON text and rehydrated on read
    recipe = fields.JSONField(default=list) # [{ingredient_id, quantity}]
    complements = fields.JSONField(default=list) # [{title, max_selection, options, required}]
    add_ons = fields.JSONField(default=list) # [{id, name, price}]

    class Meta:
        table = "products"
        indexes = [
            ("account_id",),
        ]
