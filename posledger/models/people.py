from tortoise import fields, models


class Employee(models.Model):
    id = fields.CharField(primary_key=True, max_length=64)
    account_id = fields.CharField(max_length=64)
    name = fields.CharField(max_length=255)
    role = fields.CharField(max_length=64, default="")
    base_salary = fields.FloatField(default=0)
    admission_date = fields.DateField(null=True)
    pix_key = fields.CharField(max_length=128, null=True)
    phone = fields.CharField(max_length=32, null=True)
    address = fields.TextField(null=True)
    active = fields.BooleanField(default=True)

    class Meta:
        table = "employees"
        indexes = [
            ("account_id",),
        ]


class Customer(models.Model):
    id = fields.CharField(primary_key=True, max_length=64)
    account_id = fields.CharField(max_length=64)
    name = fields.CharField(max_length=255)
    phone = fields.CharField(max_length=32, default="") # Natural key for lookup/dedup
    address = fields.TextField(null=True)
    reference = fields.TextField(null=True)
    last_order_date = fields.DatetimeField(null=True)
    total_orders = fields.IntField(default=0)

    class Meta:
        table = "customers"
        indexes = [
            ("account_id",),
            ("account_id", "phone"),
        ]
