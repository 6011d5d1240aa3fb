"""
Pricing Service - what each billable action costs.

- profile_scraping: 1 "scraping" credit per submitted URL
- video_generation: "video-seconds" credits, estimated from the script at a
  fixed speaking rate (VIDEO_WORDS_PER_MINUTE, default 150) and never less
  than one second
"""

import math
import re
from typing import Any, Dict, List, Optional

from scoutreel.config import config
from scoutreel.services.ledger_store import CreditKind


SCRAPING_CREDITS_PER_URL = 1

_WORD_RE = re.compile(r"\S+")


class PricingService:
    """Stateless cost calculations for the two billable actions."""

    @staticmethod
    def count_words(script: str) -> int:
        return len(_WORD_RE.findall(script or ""))

    @staticmethod
    def estimate_video_seconds(script: str, words_per_minute: Optional[int] = None) -> int:
        """
        Seconds of video the script will produce when spoken.

        >>> PricingService.estimate_video_seconds("one two three", words_per_minute=60)
        3
        """
        wpm = words_per_minute or config.VIDEO_WORDS_PER_MINUTE
        if wpm <= 0:
            raise ValueError("words_per_minute must be positive")
        words = PricingService.count_words(script)
        return max(1, math.ceil(words * 60 / wpm))

    @staticmethod
    def scraping_cost(urls: List[str]) -> Dict[str, Any]:
        return {"kind": CreditKind.SCRAPING, "amount": len(urls) * SCRAPING_CREDITS_PER_URL}

    @staticmethod
    def video_cost(script: str, words_per_minute: Optional[int] = None) -> Dict[str, Any]:
        return {
            "kind": CreditKind.VIDEO_SECONDS,
            "amount": PricingService.estimate_video_seconds(script, words_per_minute),
        }
