"""Unit tests for replication status verification and classification."""

from __future__ import annotations

import pytest

from logical_fanout.config.models import ReplicationConfig
from logical_fanout.config.resolver import resolve_targets
from logical_fanout.errors import DatabaseError, VerificationWarning
from logical_fanout.replication.verification import (
    SyncClassification,
    TargetStatus,
    classify,
    reduce_states,
    verify,
)

from fakes import FakeCluster

CONFIG = ReplicationConfig.model_validate(
    {
        "source": {"host": "src", "user": "postgres", "database": "app"},
        "targets": [
            {"name": "t1", "host": "db1", "user": "postgres", "database": "app"},
            {"name": "t2", "host": "db2", "user": "postgres", "database": "app"},
        ],
        "tables": ["users"],
        "settings": {"publication_name": "prefix"},
    }
)
TARGETS = resolve_targets(CONFIG)


def _provisioned_cluster() -> FakeCluster:
    cluster = FakeCluster()
    cluster.db(CONFIG.source).publications.update(
        {"prefix_t1": ("users",), "prefix_t2": ("users",)}
    )
    for target in CONFIG.targets:
        sub = CONFIG.subscription_for(target)
        cluster.db(target).subscriptions[sub] = {"enabled": True}
    return cluster


def _verify(cluster: FakeCluster):
    return verify(
        cluster(CONFIG.source), TARGETS, prefix="prefix", admin_factory=cluster
    )


class TestClassify:
    @pytest.mark.parametrize(
        ("code", "expected"),
        [
            ("r", SyncClassification.READY),
            ("s", SyncClassification.SYNCING),
            ("x", SyncClassification.UNEXPECTED),
            ("", SyncClassification.UNKNOWN),
            (None, SyncClassification.UNKNOWN),
        ],
    )
    def test_classify(self, code, expected):
        assert classify(code) == expected


class TestReduceStates:
    def test_no_rows(self):
        assert reduce_states([]) is None

    def test_all_ready(self):
        assert reduce_states(["r", "r"]) == "r"

    @pytest.mark.parametrize("copying", ["i", "d", "f", "s"])
    def test_copying_state_means_syncing(self, copying):
        assert reduce_states(["r", copying]) == "s"

    def test_other_state_surfaces(self):
        assert reduce_states(["r", "z"]) == "z"


class TestTargetStatus:
    def test_disabled_subscription_is_unhealthy(self):
        status = TargetStatus(
            target="t1",
            subscription="s",
            classification=SyncClassification.READY,
            enabled=False,
        )
        assert not status.healthy


class TestVerify:
    def test_ready_and_syncing(self):
        cluster = _provisioned_cluster()
        cluster.db(CONFIG.targets[0]).sync_states["prefix_t1_subscription"] = ["r"]
        cluster.db(CONFIG.targets[1]).sync_states["prefix_t2_subscription"] = [
            "r",
            "d",
        ]
        report = _verify(cluster)
        assert report.summary == {"t1": "ready", "t2": "syncing"}
        assert report.healthy
        assert report.warnings == []
        assert {p.name for p in report.publications} == {"prefix_t1", "prefix_t2"}

    def test_missing_status_rows_are_unknown(self):
        report = _verify(_provisioned_cluster())
        assert report.summary == {"t1": "unknown", "t2": "unknown"}
        assert not report.healthy
        assert "may be initializing" in report.targets[0].detail

    def test_unexpected_state_warns(self):
        cluster = _provisioned_cluster()
        cluster.db(CONFIG.targets[0]).sync_states["prefix_t1_subscription"] = ["z"]
        report = _verify(cluster)
        status = report.targets[0]
        assert status.classification == SyncClassification.UNEXPECTED
        assert status.state_code == "z"
        assert isinstance(status.warning, VerificationWarning)

    def test_missing_subscription_is_unknown(self):
        cluster = _provisioned_cluster()
        cluster.db(CONFIG.targets[1]).subscriptions.clear()
        report = _verify(cluster)
        assert report.targets[1].classification == SyncClassification.UNKNOWN
        assert report.targets[1].detail == "subscription not found"

    def test_unreachable_target_is_reported_not_raised(self):
        cluster = _provisioned_cluster()
        cluster.db(CONFIG.targets[0]).down = True
        report = _verify(cluster)
        assert report.targets[0].classification == SyncClassification.FAILED
        assert "status query failed" in report.targets[0].detail
        assert report.targets[1].classification == SyncClassification.UNKNOWN

    def test_status_query_error_is_reported(self):
        cluster = _provisioned_cluster()
        failing = cluster.db(CONFIG.targets[0])
        original = cluster.__call__

        def factory(conn):
            admin = original(conn)
            if admin.db is failing:
                admin.fetch_all = _raise(DatabaseError("permission denied"))
            return admin

        report = verify(
            cluster(CONFIG.source), TARGETS, prefix="prefix", admin_factory=factory
        )
        assert report.targets[0].classification == SyncClassification.FAILED
        assert "permission denied" in str(report.targets[0].warning)

    def test_missing_publication_warns(self):
        cluster = _provisioned_cluster()
        del cluster.db(CONFIG.source).publications["prefix_t2"]
        report = _verify(cluster)
        assert report.missing_publications == ["prefix_t2"]
        assert not report.healthy
        assert "prefix_t2 not found" in str(report.warnings[0])

    def test_unreachable_source_is_reported(self):
        cluster = _provisioned_cluster()
        cluster.db(CONFIG.source).down = True
        report = _verify(cluster)
        assert report.publication_error is not None
        assert len(report.targets) == 2

    def test_target_admins_are_closed(self):
        cluster = _provisioned_cluster()
        _verify(cluster)
        target_admins = [a for a in cluster.admins if a.label != CONFIG.source.label]
        assert target_admins
        assert all(a.closed for a in target_admins)


def _raise(exc: Exception):
    def _inner(*args, **kwargs):
        raise exc

    return _inner
