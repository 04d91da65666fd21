"""Unit tests for hms_mirror.config."""

import os

import pytest

from hms_mirror.config import DistcpConfig, MigrateAcidConfig, MirrorConfig, TransferConfig
from hms_mirror.errors import MissingConfigurationError
from hms_mirror.models import DataFlow, DataStrategyType, Environment


@pytest.fixture
def clean_env(monkeypatch):
    """Isolated os.environ without any HMS_MIRROR_ settings."""
    environ = {k: v for k, v in os.environ.items() if not k.startswith("HMS_MIRROR_")}
    monkeypatch.setattr(os, "environ", environ)
    return environ


class TestFromEnv:
    """Tests for MirrorConfig.from_env()."""

    def test_defaults(self, clean_env, tmp_path):
        config = MirrorConfig.from_env(str(tmp_path / "missing.env"))

        assert config.strategy == DataStrategyType.SCHEMA_ONLY
        assert config.dry_run
        assert config.concurrency == 4
        assert not config.distcp.enabled
        assert config.default_warehouse is None

    def test_env_file(self, clean_env, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text(
            "HMS_MIRROR_STRATEGY=storage_migration\n"
            "HMS_MIRROR_SOURCE_NAMESPACE=hdfs://source:8020\n"
            "HMS_MIRROR_EXECUTE=true\n"
            "HMS_MIRROR_DISTCP=1\n"
            "HMS_MIRROR_DISTCP_DATA_FLOW=push\n"
            "HMS_MIRROR_CONCURRENCY=8\n"
            "HMS_MIRROR_WAREHOUSE_EXTERNAL=/wh/ext\n"
            "HMS_MIRROR_WAREHOUSE_MANAGED=/wh/mgd\n"
            "HMS_MIRROR_RUN_KEY=nightly\n"
        )

        config = MirrorConfig.from_env(str(env_file))

        assert config.strategy == DataStrategyType.STORAGE_MIGRATION
        assert not config.dry_run
        assert config.distcp.enabled
        assert config.distcp.data_flow == DataFlow.PUSH
        assert config.concurrency == 8
        assert config.default_warehouse.external_directory == "/wh/ext"
        assert config.default_warehouse.source == "GLOBAL"
        assert config.run_key == "nightly"

    def test_environment_wins_over_file(self, clean_env, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("HMS_MIRROR_STRATEGY=SQL\n")
        clean_env["HMS_MIRROR_STRATEGY"] = "HYBRID"

        assert MirrorConfig.from_env(str(env_file)).strategy == DataStrategyType.HYBRID

    def test_invalid_combination(self, clean_env, tmp_path):
        clean_env["HMS_MIRROR_STRATEGY"] = "EXPORT_IMPORT"
        clean_env["HMS_MIRROR_DISTCP"] = "true"
        with pytest.raises(ValueError):
            MirrorConfig.from_env(str(tmp_path / "missing.env"))


class TestValidate:
    def test_inplace_enables_downgrade(self):
        config = MirrorConfig(strategy=DataStrategyType.HYBRID, migrate_acid=MigrateAcidConfig(inplace=True))
        config.validate()
        assert config.migrate_acid.on
        assert config.migrate_acid.downgrade

    def test_inplace_requires_hybrid(self):
        with pytest.raises(ValueError):
            MirrorConfig(strategy=DataStrategyType.SQL, migrate_acid=MigrateAcidConfig(inplace=True)).validate()

    def test_concurrency(self):
        with pytest.raises(ValueError):
            MirrorConfig(concurrency=0).validate()

    def test_consolidation_level(self):
        with pytest.raises(ValueError):
            MirrorConfig(distcp=DistcpConfig(consolidation_level=-1)).validate()


class TestNamespaces:
    """Target namespace precedence and distcp placement."""

    def test_common_storage_first(self):
        config = MirrorConfig(
            target_cluster_namespace="hdfs://target",
            transfer=TransferConfig(target_namespace="s3a://explicit", common_storage="s3a://common/"),
        )
        assert config.resolve_target_namespace() == "s3a://common"

    def test_explicit_target_namespace(self):
        config = MirrorConfig(
            target_cluster_namespace="hdfs://target", transfer=TransferConfig(target_namespace="s3a://explicit")
        )
        assert config.resolve_target_namespace() == "s3a://explicit"

    def test_cluster_namespace(self):
        assert MirrorConfig(target_cluster_namespace="hdfs://target").resolve_target_namespace() == "hdfs://target"

    def test_storage_migration_stays_on_source(self):
        config = MirrorConfig(
            strategy=DataStrategyType.STORAGE_MIGRATION,
            source_namespace="hdfs://source",
            target_cluster_namespace="hdfs://target",
        )
        assert config.resolve_target_namespace() == "hdfs://source"
        assert config.distcp_environment() == Environment.SOURCE

    def test_unresolvable(self):
        with pytest.raises(MissingConfigurationError):
            MirrorConfig().resolve_target_namespace()

    def test_distcp_environment(self):
        assert MirrorConfig().distcp_environment() == Environment.TARGET
        assert MirrorConfig(distcp=DistcpConfig(data_flow=DataFlow.PUSH)).distcp_environment() == Environment.SOURCE
        assert MirrorConfig(
            transfer=TransferConfig(intermediate_storage="s3a://stage")
        ).distcp_environment() == Environment.SOURCE

    def test_database_name(self):
        assert MirrorConfig().resolve_database_name("db") == "db"
        assert MirrorConfig(db_prefix="mig_").resolve_database_name("db") == "mig_db"
        assert MirrorConfig(db_prefix="mig_", db_rename="other").resolve_database_name("db") == "other"
