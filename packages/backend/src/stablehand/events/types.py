"""Event name constants.

Learn: Every dashboard module publishes `<module>:<action>` events through
publish_module_event(). Centralizing the names prevents typos between the
publishing routers and the browser listeners that switch on them.
"""

# ─── System (emitted by the broker itself) ───────────────

SYSTEM_CONNECTED = "connected"

# ─── Horses ──────────────────────────────────────────────

HORSES_CREATED = "horses:created"
HORSES_UPDATED = "horses:updated"
HORSES_DELETED = "horses:deleted"

# ─── Health records ──────────────────────────────────────

HEALTH_CREATED = "health:created"
HEALTH_UPDATED = "health:updated"
HEALTH_DELETED = "health:deleted"
HEALTH_APPOINTMENT_CREATED = "health:appointment:created"

# ─── Training ────────────────────────────────────────────

TRAINING_CREATED = "training:created"
TRAINING_UPDATED = "training:updated"
TRAINING_DELETED = "training:deleted"
TRAINING_COMPLETED = "training:completed"

# ─── Feeding ─────────────────────────────────────────────

FEEDING_CREATED = "feeding:created"
FEEDING_UPDATED = "feeding:updated"
FEEDING_DELETED = "feeding:deleted"

# ─── Documents ───────────────────────────────────────────

DOCUMENTS_UPLOADED = "documents:uploaded"
DOCUMENTS_DELETED = "documents:deleted"

# ─── Tasks ───────────────────────────────────────────────

TASKS_CREATED = "tasks:created"
TASKS_UPDATED = "tasks:updated"
TASKS_COMPLETED = "tasks:completed"

# ─── Breeding + finance ──────────────────────────────────

BREEDING_EVENT_UPDATED = "breeding:event:updated"
FINANCE_INVOICE_CREATED = "finance:invoice:created"

# ─── Admin broadcasts (published on the global channel) ──

ADMIN_ANNOUNCEMENT = "admin:announcement"
