"""Product COGS repository.

One row per (tenant, product, variant). A variant-less row (variant_id=None)
and variant rows of the same product are independent keys. Writes overwrite
cogs_cents/source/updated_by unconditionally: last write wins, no version.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator

from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session

from plconfig.core.config import get_settings
from plconfig.core.errors import ConfigValidationError
from plconfig.core.metrics import pl_config_validation_errors_total, pl_config_writes_total
from plconfig.db.models import ProductCOGSRecord, utcnow
from plconfig.db.utils import page_bounds, require_tenant, scoped, upsert_insert
from plconfig.domain.finance.types import (
    Page,
    ProductCOGS,
    ProductCOGSBulkItem,
    ProductCOGSBulkUpdate,
    ProductCOGSSource,
    ProductCOGSUpdate,
)
from plconfig.domain.finance.validation import ensure_valid_product_cogs

logger = logging.getLogger(__name__)


def _variant_key(variant_id: str | None) -> str:
    return variant_id or ""


def _to_product_cogs(row: ProductCOGSRecord) -> ProductCOGS:
    return ProductCOGS(
        id=row.id,
        tenant_id=row.tenant_id,
        product_id=row.product_id,
        variant_id=row.variant_id,
        sku=row.sku,
        cogs_cents=row.cogs_cents,
        source=row.source,
        created_at=row.created_at,
        updated_at=row.updated_at,
        updated_by=row.updated_by,
    )


def _key_filter(product_id: str, variant_id: str | None):
    return (
        ProductCOGSRecord.product_id == product_id,
        ProductCOGSRecord.variant_key == _variant_key(variant_id),
    )


def get_product_cogs_by_id(
    db: Session, tenant_id: str, product_id: str, variant_id: str | None = None
) -> ProductCOGS | None:
    """Get COGS of one product (variant_id=None) or one variant."""
    tenant_id = require_tenant(tenant_id)
    stmt = scoped(select(ProductCOGSRecord), ProductCOGSRecord, tenant_id).where(
        *_key_filter(product_id, variant_id)
    )
    row = db.scalars(stmt).first()
    return _to_product_cogs(row) if row else None


def list_product_cogs(
    db: Session,
    tenant_id: str,
    *,
    search: str | None = None,
    product_id: str | None = None,
    page: int = 1,
    limit: int | None = None,
) -> Page[ProductCOGS]:
    """List product COGS, most recently updated first.

    Args:
        db: Database session
        tenant_id: Tenant ID
        search: Case-insensitive substring matched against sku and product_id
        product_id: Exact product_id match
        page: 1-based page number
        limit: Page size (settings default when None, clamped to the maximum)

    Returns:
        Page with the rows and the total number of matches

    """
    tenant_id = require_tenant(tenant_id)
    page, limit, offset = page_bounds(page, limit)

    conditions = []
    if search:
        conditions.append(
            or_(
                ProductCOGSRecord.sku.icontains(search, autoescape=True),
                ProductCOGSRecord.product_id.icontains(search, autoescape=True),
            )
        )
    if product_id:
        conditions.append(ProductCOGSRecord.product_id == product_id)

    rows_stmt = (
        scoped(select(ProductCOGSRecord), ProductCOGSRecord, tenant_id)
        .where(*conditions)
        .order_by(ProductCOGSRecord.updated_at.desc(), ProductCOGSRecord.id.desc())
        .limit(limit)
        .offset(offset)
    )
    count_stmt = scoped(
        select(func.count()).select_from(ProductCOGSRecord), ProductCOGSRecord, tenant_id
    ).where(*conditions)

    rows = [_to_product_cogs(r) for r in db.scalars(rows_stmt)]
    total = db.scalar(count_stmt) or 0
    return Page[ProductCOGS](rows=rows, total_count=total, page=page, limit=limit)


def _upsert_row(
    db: Session,
    tenant_id: str,
    item: ProductCOGSBulkItem,
    source: ProductCOGSSource,
    actor_id: str,
) -> None:
    now = utcnow()
    stmt = upsert_insert(db, ProductCOGSRecord).values(
        tenant_id=tenant_id,
        product_id=item.product_id,
        variant_id=item.variant_id,
        variant_key=_variant_key(item.variant_id),
        sku=item.sku,
        cogs_cents=item.cogs_cents,
        source=source,
        created_at=now,
        updated_at=now,
        updated_by=actor_id,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["tenant_id", "product_id", "variant_key"],
        set_=dict(
            cogs_cents=stmt.excluded.cogs_cents,
            source=stmt.excluded.source,
            updated_at=now,
            updated_by=actor_id,
        ),
    )
    db.execute(stmt)


def _check(item: ProductCOGSBulkItem, validate: bool | None, tenant_id: str) -> None:
    if not (get_settings().pl_validate_on_write if validate is None else validate):
        return
    try:
        ensure_valid_product_cogs(item)
    except ConfigValidationError as e:
        pl_config_validation_errors_total.labels(config_type="product_cogs").inc()
        logger.warning(f"Rejected product COGS write for tenant {tenant_id}: {e}")
        raise


def upsert_product_cogs(
    db: Session,
    tenant_id: str,
    product_id: str,
    data: ProductCOGSUpdate,
    actor_id: str,
    *,
    variant_id: str | None = None,
    sku: str | None = None,
    validate: bool | None = None,
) -> ProductCOGS:
    """Insert or overwrite COGS of one product or variant.

    ``sku`` is stored on insert only; later writes to the key leave it as is.

    Raises:
        ConfigValidationError: If cogs_cents is negative or product_id empty

    """
    tenant_id = require_tenant(tenant_id)
    item = ProductCOGSBulkItem(
        product_id=product_id, variant_id=variant_id, sku=sku, cogs_cents=data.cogs_cents
    )
    _check(item, validate, tenant_id)

    _upsert_row(db, tenant_id, item, data.source or "manual", actor_id)
    db.commit()

    pl_config_writes_total.labels(config_type="product_cogs", action="update").inc()
    logger.info(
        f"Set COGS for tenant {tenant_id} product {product_id} "
        f"variant {variant_id or '-'} to {data.cogs_cents} cents"
    )
    return get_product_cogs_by_id(db, tenant_id, product_id, variant_id)


def iter_upsert_product_cogs(
    db: Session,
    tenant_id: str,
    data: ProductCOGSBulkUpdate,
    actor_id: str,
    *,
    validate: bool | None = None,
) -> Iterator[ProductCOGSBulkItem]:
    """Upsert many product COGS rows sequentially, yielding each committed item.

    Every item is validated before the first write. Each row is committed on
    its own, so a failure mid-batch leaves the items already yielded written;
    the session is rolled back and the error propagates unchanged.

    Raises:
        ConfigValidationError: If any item is invalid (nothing is written)

    """
    tenant_id = require_tenant(tenant_id)
    source = data.source or "manual"

    for item in data.products:
        _check(item, validate, tenant_id)

    written = 0
    try:
        for item in data.products:
            _upsert_row(db, tenant_id, item, source, actor_id)
            db.commit()
            written += 1
            yield item
    except Exception:
        db.rollback()
        logger.error(
            f"Bulk COGS upsert for tenant {tenant_id} stopped after "
            f"{written} of {len(data.products)} rows"
        )
        raise
    finally:
        if written:
            pl_config_writes_total.labels(config_type="product_cogs", action="bulk_update").inc()

    logger.info(f"Bulk upserted {written} product COGS rows for tenant {tenant_id} ({source})")


def bulk_upsert_product_cogs(
    db: Session,
    tenant_id: str,
    data: ProductCOGSBulkUpdate,
    actor_id: str,
    *,
    validate: bool | None = None,
) -> int:
    """Upsert many product COGS rows sequentially.

    Returns:
        Number of rows written

    Raises:
        ConfigValidationError: If any item is invalid (nothing is written)

    """
    return sum(
        1 for _ in iter_upsert_product_cogs(db, tenant_id, data, actor_id, validate=validate)
    )


def delete_product_cogs(
    db: Session, tenant_id: str, product_id: str, variant_id: str | None = None
) -> bool:
    """Delete COGS of one product (variant_id=None) or one variant.

    Returns:
        True if a row was deleted

    """
    tenant_id = require_tenant(tenant_id)
    result = db.execute(
        delete(ProductCOGSRecord).where(
            ProductCOGSRecord.tenant_id == tenant_id, *_key_filter(product_id, variant_id)
        )
    )
    db.commit()

    deleted = result.rowcount > 0
    if deleted:
        pl_config_writes_total.labels(config_type="product_cogs", action="delete").inc()
        logger.info(
            f"Deleted COGS for tenant {tenant_id} product {product_id} variant {variant_id or '-'}"
        )
    return deleted


__all__ = [
    "get_product_cogs_by_id",
    "list_product_cogs",
    "upsert_product_cogs",
    "iter_upsert_product_cogs",
    "bulk_upsert_product_cogs",
    "delete_product_cogs",
]
