"""Stable, block-randomized substitutes for identifiers and labels."""

import logging
import random
from typing import Any, Optional

from .crosswalk import CrosswalkState

logger = logging.getLogger(__name__)

RANDOM_BASE_CEILING = 100_000


class IdentifierRemapper:
    """
    Issue substitute IDs that are stable per (key, original value).

    New IDs are drawn at random, without replacement, from a block of
    consecutive integers reserved from a counter. Drawing from a bounded
    block instead of handing out the next integer keeps the order of
    substitutes from revealing the order in which originals were seen.

    Args:
        state: Crosswalk state holding tables, counters and blocks
        rng: Random source; defaults to ``random.SystemRandom()``
    """

    def __init__(self, state: CrosswalkState, rng: Optional[random.Random] = None):
        self.state = state
        self.rng = rng or random.SystemRandom()

    def remap_id(self, key: str, original: Any) -> Optional[int]:
        """
        Return the substitute ID for *original* under *key*.

        ``None`` is returned unchanged and consumes nothing. The first time a
        value is seen a new ID is drawn; every later call returns that ID.
        """
        if original is None:
            return None

        orig_text = str(original)
        substitute = self.state.lookup_id(key, orig_text)
        if substitute is None:
            substitute = self._draw(key, orig_text)
            self.state.record_id(key, orig_text, substitute)
            logger.debug(f"{key} value {orig_text} remapped to {substitute}")
        return substitute

    def remap_label(self, key: str, original: Any) -> Optional[str]:
        """Return ``"<key>_<id>"`` for *original*; empty and null pass through."""
        if original is None or original == "":
            return original
        return f"{key}_{self.remap_id(key, original)}"

    def _draw(self, key: str, orig_text: str) -> int:
        """Draw an unused ID for *key* from its block, refilling as needed."""
        block_key = self.state.remap.block_key(key)
        block = self.state.id_blocks.setdefault(block_key, [])
        set_aside: list[int] = []
        try:
            while True:
                if not block:
                    self._refill(block_key, block)
                candidate = block.pop(self.rng.randrange(len(block)))
                if str(candidate) == orig_text:
                    # A substitute equal to its original would leak the value.
                    set_aside.append(candidate)
                    continue
                return candidate
        finally:
            block.extend(set_aside)

    def _refill(self, block_key: str, block: list[int]) -> None:
        counters = self.state.id_counters
        if block_key not in counters:
            base = self.state.remap.base_for(block_key)
            if base is None:
                base = self.rng.randint(1, RANDOM_BASE_CEILING)
            counters[block_key] = base
        start = counters[block_key]
        size = self.state.remap.block_size_for(block_key)
        block.extend(range(start, start + size))
        counters[block_key] = start + size
        logger.debug(f"Reserved ID block {start}-{start + size - 1} for {block_key}")
