"""Random session names."""

import random
import string


def generate_name() -> str:
    """Four characters alternating letter and digit, droid style (e.g. r2d2)."""
    return "".join(
        random.choice(alphabet)
        for alphabet in (string.ascii_lowercase, string.digits) * 2
    )
