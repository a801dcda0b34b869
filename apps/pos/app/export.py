import os
import logging

import httpx


EXPORT_WEBHOOK_URL = os.getenv("POS_EXPORT_WEBHOOK_URL", "")
EXPORT_TIMEOUT = float(os.getenv("POS_EXPORT_TIMEOUT_SECS", "3"))

_log = logging.getLogger("barpos.export")


def export_bill(payload: dict) -> bool:
    """
    Push a paid bill to the bookkeeping webhook, one row per line:
    [table_name, item, quantity, unit_price, line_total, order_created_at].

    Best effort: a failing webhook is logged and never fails the checkout.
    """
    url = EXPORT_WEBHOOK_URL
    if not url:
        return False
    try:
        r = httpx.post(url, json=payload, timeout=EXPORT_TIMEOUT)
        r.raise_for_status()
    except Exception as e:
        _log.warning("bill export failed", extra={"bill_id": payload.get("bill_id"), "error": str(e)})
        return False
    _log.info("bill exported", extra={"bill_id": payload.get("bill_id"), "rows": len(payload.get("rows") or [])})
    return True
