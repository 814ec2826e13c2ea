from tortoise import fields, models
import uuid


class AppliedBatch(models.Model):
    """
    Idempotency table for /api/batch. Stores the client-generated batch id so a
    replayed outbox entry that already landed is not applied twice.
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    account_id = fields.CharField(max_length=64)
    batch_id = fields.CharField(max_length=128, unique=True)
    operations = fields.IntField(default=0)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "applied_batches"
