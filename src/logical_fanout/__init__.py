"""Multi-target PostgreSQL logical replication setup."""
