from prometheus_client import Counter


scheduler_ticks_total = Counter(
    "reminder_scheduler_ticks_total",
    "Total scheduler dispatch ticks",
)

scheduler_due_total = Counter(
    "reminder_scheduler_due_total",
    "Total due reminders returned by scheduler queries",
)

reminders_claimed_total = Counter(
    "reminders_claimed_total",
    "Total reminder leases successfully claimed",
)

reminders_claim_conflicts_total = Counter(
    "reminders_claim_conflicts_total",
    "Total claim attempts lost to another worker or an already sent reminder",
)

reminders_delivered_total = Counter(
    "reminders_delivered_total",
    "Total reminders delivered, by channel",
    ["channel"],
)

reminders_released_total = Counter(
    "reminders_released_total",
    "Total reminders released without being sent, by reason",
    ["reason"],
)

push_sends_total = Counter(
    "reminder_push_sends_total",
    "Total per-token push sends, by result",
    ["result"],
)

push_tokens_pruned_total = Counter(
    "reminder_push_tokens_pruned_total",
    "Total invalid push tokens removed from user profiles",
)

email_sends_total = Counter(
    "reminder_email_sends_total",
    "Total reminder emails, by result",
    ["result"],
)

reminders_swept_total = Counter(
    "reminders_swept_total",
    "Total reminders deleted by the retention sweeper",
)
