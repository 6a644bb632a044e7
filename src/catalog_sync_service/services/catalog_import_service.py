"""Merges validated import batches into the catalog graph."""

import logging

from sqlalchemy.orm import Session

from catalog_sync_service.models.catalog_models import RowItem
from catalog_sync_service.models.sync_models import ImportSummary
from catalog_sync_service.observability import traced
from catalog_sync_service.observability.metrics import record_entity_changes
from catalog_sync_service.services.graph_maintainer import GraphConsistencyMaintainer
from catalog_sync_service.services.reference_resolver import ReferenceResolver
from catalog_sync_service.services.transaction_coordinator import TransactionCoordinator

logger = logging.getLogger(__name__)


class CatalogImportService:
    """Applies a batch of RowItems as one atomic unit.

    Each row is resolved (entities found or created by natural key) and then
    its references are repaired. A failure on any row rolls back the whole
    batch, including the rows before it.
    """

    def __init__(self, coordinator: TransactionCoordinator) -> None:
        """Initialize the import service.

        Args:
            coordinator: Transaction coordinator owning the unit of work
        """
        self.coordinator = coordinator

    @traced("catalog_import.apply_batch")
    def apply_batch(
        self,
        restaurant_id: str,
        rows: list[RowItem],
        user_id: str | None = None,
        menu_id: str | None = None,
    ) -> ImportSummary:
        """Merge ``rows`` into the restaurant's catalog.

        Args:
            restaurant_id: Restaurant the batch belongs to
            rows: Validated rows
            user_id: User recorded on created/updated entities
            menu_id: Optional menu the batch's categories are linked to

        Returns:
            ImportSummary: Created/updated counts per entity type
        """

        def work(session: Session) -> ImportSummary:
            # Caches and tallies live only for this run
            resolver = ReferenceResolver(session, restaurant_id, user_id)
            maintainer = GraphConsistencyMaintainer(session, restaurant_id)

            for index, row in enumerate(rows, start=1):
                resolved = resolver.resolve_row(row)
                maintainer.apply(resolved, menu_id=menu_id)
                logger.debug(f"Merged row {index} ({row.name}) into item {resolved.item_id}")

            session.flush()
            return resolver.summary

        summary = self.coordinator.run(work)

        for entity_type, counts in summary:
            record_entity_changes(entity_type, counts.created, counts.updated)

        logger.info(
            f"Imported {len(rows)} rows for restaurant {restaurant_id}: "
            f"{summary.items.created} items created, {summary.items.updated} updated, "
            f"{summary.categories.created} categories created"
        )
        return summary
