"""UTC timezone enforcement.

Importing this module sets TZ=UTC so timestamps written by the pipeline
and by the database agree across environments. Timestamp columns are
`timestamptz`; every value written is timezone-aware UTC.
"""

import os
from datetime import datetime, timezone

from sqlalchemy import DateTime

os.environ["TZ"] = "UTC"

# Column type for every timestamp field
UtcDateTime = DateTime(timezone=True)


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)
