STOCK_POLICY_CLAMP = "clamp"
STOCK_POLICY_REJECT = "reject"
STOCK_POLICIES = (STOCK_POLICY_CLAMP, STOCK_POLICY_REJECT)

PURCHASE_STATUSES = {
    "paid": "Paid",
    "pending": "Pending",
    "overdue": "Overdue",
}

DEFAULT_CATEGORY = "General"
