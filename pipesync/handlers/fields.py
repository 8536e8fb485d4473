"""Field values and pass-through keys the default handlers write."""

STATUS_PROCESSING = "Processing"
STATUS_COMPLETED = "Completed"

APPROVAL_PENDING = "Pending"

STAGE_NOT_STARTED = "Not Started"
STAGE_COMPLETED = "Completed"

# Extra keys; not monitored, so writing them never triggers a change
REGENERATING_KEY = "regenerating"
LAST_SYNCED_KEY = "last_synced_at"
STAGE_KEY = "stage"
