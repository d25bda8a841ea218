"""Payment reference format: ``TXN-<unix-ms>-<userId>-<random>``.

The embedded user id is what lets a payment that lands before its order be
traced back to the buyer's cart. ``generate_reference`` and
``extract_user_id`` must change together.
"""

import secrets
import time
from typing import Optional

PREFIX = "TXN"


def generate_reference(user_id: str) -> str:
    if not user_id:
        raise ValueError("user_id is required to build a payment reference")

    timestamp = int(time.time() * 1000)
    suffix = secrets.token_hex(3)
    return f"{PREFIX}-{timestamp}-{user_id}-{suffix}"


def extract_user_id(reference: Optional[str]) -> Optional[str]:
    """Return the user id embedded in ``reference``, or None if it is not ours.

    User ids may contain dashes, so only the first two and the last segment
    are structural.
    """
    if not reference:
        return None

    parts = reference.split("-")
    if len(parts) < 4 or parts[0] != PREFIX:
        return None

    timestamp, suffix = parts[1], parts[-1]
    if not timestamp.isdigit() or not suffix:
        return None

    user_id = "-".join(parts[2:-1])
    return user_id or None
