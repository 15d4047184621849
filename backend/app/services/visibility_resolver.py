"""
Product visibility resolution

Hidden products (isVisible == false) and their COGs are excluded from every
listing unless the caller passes showHidden=true.
"""
import logging
from typing import Optional, Set

from app.models.query import StorePredicate
from app.services.metadata_repository import MetadataStore, RecordNotFoundError

logger = logging.getLogger(__name__)


def product_predicate(
    satellite_id: Optional[str] = None,
    processing_level: Optional[str] = None,
    product_code: Optional[str] = None,
    show_hidden: bool = False
) -> StorePredicate:
    """
    Product-collection filter for a listing

    Args:
        satellite_id: Exact satelliteId
        processing_level: Exact processingLevel
        product_code: Exact productId
        show_hidden: Include hidden products

    Returns:
        StorePredicate over Product documents
    """
    predicate = StorePredicate()
    if satellite_id:
        predicate.equals["satelliteId"] = satellite_id
    if processing_level:
        predicate.equals["processingLevel"] = processing_level
    if product_code:
        predicate.equals["productId"] = product_code
    if not show_hidden:
        predicate.equals["isVisible"] = True
    return predicate


def resolve_visible_product_ids(
    store: MetadataStore,
    satellite_id: Optional[str] = None,
    processing_level: Optional[str] = None,
    product_code: Optional[str] = None,
    show_hidden: bool = False
) -> Optional[Set[str]]:
    """
    Store ids of the products a COG listing may draw from

    Returns:
        None when show_hidden is true (no restriction), otherwise the ids of
        the visible products matching the filter. An empty set means the COG
        query must return nothing.
    """
    if show_hidden:
        return None

    products = store.find_products(
        product_predicate(satellite_id, processing_level, product_code, show_hidden=False)
    )
    visible_ids = {product.id for product in products}
    logger.debug(
        f"Resolved {len(visible_ids)} visible products for "
        f"{satellite_id}/{processing_level}/{product_code}"
    )
    return visible_ids


def apply_visibility(predicate: StorePredicate, visible_product_ids: Optional[Set[str]]) -> StorePredicate:
    """AND a resolved visible-id set into a COG predicate as product IN ids"""
    if visible_product_ids is not None:
        predicate.members["product"] = set(visible_product_ids)
    return predicate


def is_cog_visible(store: MetadataStore, product_id: Optional[str], show_hidden: bool = False) -> bool:
    """Visibility of a single COG through its owning product"""
    if show_hidden:
        return True
    if not product_id:
        return False
    try:
        return store.get_product(product_id).is_visible
    except RecordNotFoundError:
        return False
