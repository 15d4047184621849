"""
Age-based COG purge

Deletes COG records acquired before a cutoff and pulls their ids out of the
owning product's and satellite's reference sets.
"""
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set

from dateutil.relativedelta import relativedelta

from app.models.query import StorePredicate
from app.services.metadata_repository import MetadataStore, RecordNotFoundError
from common.timeutils import datetime_to_millis, millis_to_iso
from common.validators import InvalidQueryError

logger = logging.getLogger(__name__)


class PurgeResult:
    """Purge outcome"""

    def __init__(self, cutoff: int):
        self.cutoff: int = cutoff
        self.deleted_cogs: int = 0
        self.updated_products: int = 0
        self.updated_satellites: int = 0
        self.errors: List[str] = []

    def to_dict(self) -> Dict:
        return {
            "cutoff": millis_to_iso(self.cutoff),
            "deletedCount": self.deleted_cogs,
            "updatedProducts": self.updated_products,
            "updatedSatellites": self.updated_satellites,
            "errors": self.errors,
        }


def relative_cutoff(
    days: int = 0,
    months: int = 0,
    years: int = 0,
    now: Optional[datetime] = None
) -> int:
    """
    Cutoff instant `days`/`months`/`years` before now

    Raises:
        InvalidQueryError: no positive period given, or a negative one
    """
    if min(days, months, years) < 0:
        raise InvalidQueryError("days, months and years must not be negative")
    if days == 0 and months == 0 and years == 0:
        raise InvalidQueryError("Provide at least one of days, months or years")
    now = now or datetime.now(timezone.utc)
    return datetime_to_millis(now - relativedelta(days=days, months=months, years=years))


class PurgeService:
    """
    COG purge service
    """

    def __init__(self, store: MetadataStore):
        self.store = store

    def purge_before(self, cutoff: int) -> PurgeResult:
        """
        Delete every COG acquired strictly before `cutoff`

        Args:
            cutoff: Epoch ms

        Returns:
            PurgeResult
        """
        result = PurgeResult(cutoff)
        cogs = self.store.find_cogs(StorePredicate(ranges={"aquisition_datetime": (None, cutoff - 1)}))
        if not cogs:
            logger.info(f"No cogs before {millis_to_iso(cutoff)}")
            return result

        by_product: Dict[str, Set[str]] = defaultdict(set)
        by_satellite: Dict[str, Set[str]] = defaultdict(set)
        for cog in cogs:
            if cog.product:
                by_product[cog.product].add(cog.id)
            by_satellite[cog.satellite].add(cog.id)

        result.deleted_cogs = self.store.delete_cogs(cog.id for cog in cogs)

        for product_id, cog_ids in by_product.items():
            try:
                self.store.remove_product_cogs(product_id, cog_ids)
                result.updated_products += 1
            except RecordNotFoundError:
                logger.warning(f"Product already deleted: {product_id}")

        for satellite_id, cog_ids in by_satellite.items():
            try:
                self.store.remove_from_satellite_sets(satellite_id, cogs=cog_ids)
                result.updated_satellites += 1
            except RecordNotFoundError:
                logger.warning(f"Satellite already deleted: {satellite_id}")

        logger.info(f"Purge complete: {result.to_dict()}")
        return result

    def purge_older_than(
        self,
        days: int = 0,
        months: int = 0,
        years: int = 0,
        now: Optional[datetime] = None
    ) -> PurgeResult:
        """Delete every COG acquired before now minus the given period"""
        return self.purge_before(relative_cutoff(days, months, years, now))
