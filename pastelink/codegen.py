"""Short code generation for new texts.

Codes are drawn from a CSPRNG (nanoid reads ``os.urandom``) over a 62-symbol
alphanumeric alphabet. With 6 symbols that is 62**6 (about 5.7e10) codes.

Flow Diagram — generate()
=========================
::
    ┌─────────────┐
    │ draw() code │◄──────────────┐
    └──────┬──────┘               │
           ▼                      │
    ┌─────────────┐  EXISTS       │
    │ exists(code)├───────────────┤ attempts < max
    └──────┬──────┘               │
      FREE │                      │
           ▼             attempts == max
    ┌─────────────┐        ┌──────┴────────────┐
    │ return code │        │ CapacityExhausted │
    └─────────────┘        └───────────────────┘

The pre-check only narrows the race; the UNIQUE constraint on ``texts.code``
is what actually guarantees uniqueness (see RecordStore.create).
"""

import logging
from collections.abc import Awaitable, Callable
from typing import NoReturn

from nanoid import generate

from pastelink.errors import CapacityExhausted

__all__ = ["ALPHABET", "CodeGenerator"]

ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"

logger = logging.getLogger("pastelink.codegen")


class CodeGenerator:
    def __init__(self, length: int = 6, alphabet: str = ALPHABET, max_attempts: int = 100):
        assert length > 0, f"length must be positive, got {length!r}"
        assert max_attempts > 0, f"max_attempts must be positive, got {max_attempts!r}"
        self.length = length
        self.alphabet = alphabet
        self.max_attempts = max_attempts

    def draw(self) -> str:
        return generate(self.alphabet, self.length)

    async def generate(self, exists: Callable[[str], Awaitable[bool]]) -> str:
        """Return a code for which ``exists`` reported False.

        ``exists`` must see every row ever inserted and not yet swept,
        dead or alive.

        Raises:
            CapacityExhausted: if ``max_attempts`` draws all collided.
        """
        for attempt in range(1, self.max_attempts + 1):
            code = self.draw()
            if not await exists(code):
                if attempt > 1:
                    logger.info(f"Free code found after {attempt} attempts")
                return code
        self.exhausted()

    def exhausted(self) -> NoReturn:
        logger.critical(
            f"Unable to generate unique code after {self.max_attempts} attempts; code space is near saturation"
        )
        raise CapacityExhausted(f"Unable to generate unique code after {self.max_attempts} attempts")
