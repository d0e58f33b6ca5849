"""Date manipulation utilities"""

from datetime import datetime
from typing import Optional


def iso_to_ddmmyyyy(value: Optional[str]) -> str:
    """
    Convert an ISO timestamp from the SOAP service to the form's dd-mm-yyyy.

    Accepts "2025-11-05T13:25:41.307" as well as "2025-11-05".
    Returns "" for empty or unparseable input.
    """
    if not value:
        return ""
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return ""
    return parsed.strftime("%d-%m-%Y")
