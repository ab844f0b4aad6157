import hmac
import os
from typing import Optional

from fastapi import Header, HTTPException

def verify_internal_service(x_internal_key: Optional[str] = Header(default=None)) -> None:
    """Guard for the dev/admin routes: X-Internal-Key must equal INTERNAL_SERVICE_SECRET."""
    # read at call time so config.env / test overrides apply without a restart
    secret = os.getenv("INTERNAL_SERVICE_SECRET", "")
    if not secret:
        raise HTTPException(
            status_code=503,
            detail="Dev routes are disabled: INTERNAL_SERVICE_SECRET is not set.",
        )

    if not x_internal_key or not hmac.compare_digest(x_internal_key, secret):
        raise HTTPException(status_code=401, detail="Unauthorized service call.")
