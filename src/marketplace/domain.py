"""Marketplace domain — order fulfillment and settlement pipeline.

A single bounded context so that cart conversion, inventory reservation,
payment settlement and delivery creation commit in one unit of work.
"""

import structlog
from protean.domain import Domain

from marketplace.utils.logging import configure_logging

# Configure logging for the application
configure_logging()

logger = structlog.get_logger(__name__)

# Domain Composition Root
marketplace = Domain(name="marketplace")
