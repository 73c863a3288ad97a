from django.core.exceptions import ValidationError
from django.db import models


# ---------- Audit / Event log ----------
class AuditLog(models.Model):  # accountability and traceability
    # Who performed the action (username, or "system" for tasks)
    actor = models.CharField(max_length=150, null=True, blank=True)
    # Common choices: create, edit, delete, return, post, reverse, skip
    action = models.CharField(max_length=50)
    # What kind of object was affected ("Invoice", "JournalEntry", ...)
    object_type = models.CharField(max_length=100)
    object_id = models.CharField(max_length=100, blank=True)
    # before/after details of what changed, in JSON format
    changes = models.JSONField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["object_type", "object_id"]),
            models.Index(fields=["created_at"]),
        ]

    def __str__(self):
        return (
            f"[{self.created_at:%Y-%m-%d %H:%M}] {self.actor} "
            f"{self.action} {self.object_type}({self.object_id})"
        )

    def save(self, *args, **kwargs):
        # Append-only: rows are written once and never updated
        if self.pk:
            raise ValidationError("Audit log entries cannot be modified.")
        self.full_clean()
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("Audit log entries cannot be deleted.")
