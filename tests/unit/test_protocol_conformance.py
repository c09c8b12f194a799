"""Protocol conformance tests: every admin implementation satisfies DatabaseAdmin."""

from __future__ import annotations

from logical_fanout.config.models import ConnectionConfig
from logical_fanout.db.admin import DatabaseAdmin
from logical_fanout.db.postgres import PostgresAdmin

from fakes import FakeAdmin, FakeCluster, FakeDatabase


class TestProtocolConformance:
    def test_postgres_admin_satisfies_database_admin(self):
        admin = PostgresAdmin(ConnectionConfig(user="postgres", database="app"))
        assert isinstance(admin, DatabaseAdmin)

    def test_fake_admin_satisfies_database_admin(self):
        assert isinstance(FakeAdmin(FakeDatabase()), DatabaseAdmin)

    def test_fake_cluster_builds_database_admins(self):
        cluster = FakeCluster()
        admin = cluster(ConnectionConfig(user="postgres", database="app"))
        assert isinstance(admin, DatabaseAdmin)
        assert admin.label == "localhost:5432/app"
