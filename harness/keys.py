"""Random key generation for the soak loop."""

from __future__ import annotations

import random
import string
import time
from collections.abc import Iterator

ALPHABET = string.ascii_lowercase + string.ascii_uppercase + string.digits
DEFAULT_KEY_LENGTH = 32


class RandomKeySource:
    """Produces fixed-length random keys from a private generator.

    The generator belongs to this instance; two sources built with the same
    seed yield the same sequence.
    """

    def __init__(
        self,
        seed: int | None = None,
        length: int = DEFAULT_KEY_LENGTH,
        alphabet: str = ALPHABET,
    ) -> None:
        if length < 1:
            raise ValueError("length must be at least 1")
        if not alphabet:
            raise ValueError("alphabet must not be empty")
        self.seed: int = time.time_ns() if seed is None else seed
        self.length = length
        self.alphabet = alphabet
        self.rng = random.Random(self.seed)

    def next_key(self) -> str:
        return "".join(self.rng.choices(self.alphabet, k=self.length))

    def __iter__(self) -> Iterator[str]:
        while True:
            yield self.next_key()
