"""Services that sit alongside the approval engine."""
