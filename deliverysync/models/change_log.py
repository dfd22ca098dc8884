from tortoise import fields, models


class ChangeLogEntry(models.Model):
    """
    Row-level change records written in the same transaction as the row they
    describe. The relay drains them in `seq` order into the change feed, so
    `seq` is the commit order every subscriber observes.
    """
    seq = fields.BigIntField(primary_key=True)
    table_name = fields.CharField(max_length=64) # e.g., 'orders', 'deliveries'
    event_type = fields.CharField(max_length=16) # INSERT, UPDATE or DELETE
    new_record = fields.JSONField(default=dict)
    old_record = fields.JSONField(default=dict)
    published = fields.BooleanField(default=False)
    attempts = fields.IntField(default=0)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "change_log"
        indexes = [
            ("published", "seq"),
        ]
