"""CRUD 操作模块"""
from .billing_events import append as append_billing_event
from .billing_events import has_billing_trial
from .billing_events import list_for_user as list_billing_events
from .billing_events import list_user_ids as list_billing_user_ids

__all__ = [
    "append_billing_event",
    "has_billing_trial",
    "list_billing_events",
    "list_billing_user_ids",
]
