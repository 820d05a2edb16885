import secrets
import string
import time
from typing import Callable, Optional

BASE36_ALPHABET = string.digits + string.ascii_lowercase
TIME_FRAGMENT_LENGTH = 4
RANDOM_FRAGMENT_LENGTH = 2

def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("base36 encoding expects a non-negative integer")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))

def random_base36(length: int = RANDOM_FRAGMENT_LENGTH) -> str:
    return "".join(secrets.choice(BASE36_ALPHABET) for _ in range(length))

class ShareCodeGenerator:
    """Builds short share codes from a time fragment and a random fragment.

    The time fragment keeps codes roughly chronological; the random fragment
    separates codes generated in the same millisecond. Neither guarantees
    uniqueness, which is checked by the registry against stored entries.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        random_fragment: Optional[Callable[[], str]] = None,
    ):
        self.clock = clock
        self.random_fragment = random_fragment or random_base36

    def time_fragment(self) -> str:
        millis = int(self.clock() * 1000)
        return to_base36(millis)[-TIME_FRAGMENT_LENGTH:].rjust(TIME_FRAGMENT_LENGTH, "0")

    def generate(self) -> str:
        return f"{self.time_fragment()}{self.random_fragment()}".upper()

    __call__ = generate
