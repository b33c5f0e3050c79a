"""Size-tiered upload dispatch."""

from collections import defaultdict
from typing import Iterable, TypeVar

from ..common.constants import INSTANT_LIMIT, MEDIUM_LIMIT
from ..common.exceptions import ValidationError
from .models import UploadTier

T = TypeVar("T")


class UploadDispatcher:
    """Classifies files by size into upload tiers.

    Upper bounds are closed: a file exactly at ``instant_limit`` is instant,
    exactly at ``medium_limit`` is chunked.
    """

    def __init__(self, instant_limit: int = INSTANT_LIMIT, medium_limit: int = MEDIUM_LIMIT) -> None:
        if not 0 < instant_limit < medium_limit:
            raise ValueError("limits must satisfy 0 < instant_limit < medium_limit")
        self.instant_limit = instant_limit
        self.medium_limit = medium_limit

    def classify(self, size: int) -> UploadTier:
        """Tier for a file of ``size`` bytes."""
        if size < 0:
            raise ValidationError("fileSize", size, "File size cannot be negative")
        if size <= self.instant_limit:
            return UploadTier.INSTANT
        if size <= self.medium_limit:
            return UploadTier.CHUNKED
        return UploadTier.MANUAL

    def group(self, items: Iterable[tuple[T, int]]) -> dict[UploadTier, list[T]]:
        """Split ``(item, size)`` pairs of a batch by tier, keeping input order."""
        groups: dict[UploadTier, list[T]] = defaultdict(list)
        for item, size in items:
            groups[self.classify(size)].append(item)
        return {tier: groups.get(tier, []) for tier in UploadTier}
