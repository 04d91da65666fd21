"""
hms_mirror - Plan and apply Hive metastore migrations between clusters.

API Tiers:

    Simple API - scan, plan and apply in one call:
        from hms_mirror import migrate, MirrorConfig, GlueCatalogScanner

    Composable API - drive the pieces yourself:
        from hms_mirror import TransferOrchestrator, NamespaceTranslator, GlobalLocationMap

    Utilities - namespace helpers and distcp planning:
        from hms_mirror import reduce_url_by, build_distcp_list
"""

from hms_mirror.catalog import CatalogScanner, GlueCatalogScanner, MetadataCollector
from hms_mirror.config import MirrorConfig
from hms_mirror.connections import ConnectionProvider, PooledConnectionProvider, SqlRunner
from hms_mirror.distcp import DistcpPlan, DistcpPlanBuilder, build_distcp_list, write_distcp_plan
from hms_mirror.errors import (
    ConnectivityError,
    LocationMismatchError,
    MirrorError,
    MissingConfigurationError,
    PhaseTransitionError,
)
from hms_mirror.ledger import TranslationLedger
from hms_mirror.location_map import GlobalLocationMap, GlmResult
from hms_mirror.models import (
    DataStrategyType,
    DBMirror,
    Environment,
    PhaseState,
    ReturnStatus,
    TableMirror,
    TableResult,
    TableType,
    TranslationLevel,
    Warehouse,
)
from hms_mirror.namespace import get_namespace, reduce_url_by, replace_namespace, strip_namespace
from hms_mirror.parallel import MigrationSummary, create_summary
from hms_mirror.transfer import IssueSink, LoggingIssueSink, MigrationReport, TransferOrchestrator, migrate
from hms_mirror.translator import NamespaceTranslator
from hms_mirror.warehouse import SourceLocationIndex, WarehousePlanRegistry

__all__ = [
    # Simple API
    "migrate",
    "MirrorConfig",
    "GlueCatalogScanner",
    # Composable API
    "TransferOrchestrator",
    "NamespaceTranslator",
    "GlobalLocationMap",
    "GlmResult",
    "WarehousePlanRegistry",
    "SourceLocationIndex",
    "TranslationLedger",
    "CatalogScanner",
    "MetadataCollector",
    "ConnectionProvider",
    "PooledConnectionProvider",
    "SqlRunner",
    "IssueSink",
    "LoggingIssueSink",
    "MigrationReport",
    # Models
    "DataStrategyType",
    "DBMirror",
    "Environment",
    "PhaseState",
    "ReturnStatus",
    "TableMirror",
    "TableResult",
    "TableType",
    "TranslationLevel",
    "Warehouse",
    # Errors
    "MirrorError",
    "MissingConfigurationError",
    "LocationMismatchError",
    "ConnectivityError",
    "PhaseTransitionError",
    # Utilities
    "get_namespace",
    "strip_namespace",
    "replace_namespace",
    "reduce_url_by",
    "build_distcp_list",
    "DistcpPlan",
    "DistcpPlanBuilder",
    "write_distcp_plan",
    "MigrationSummary",
    "create_summary",
]
__version__ = "0.1.0"
