"""Core: domain models, contracts, configuration and orchestration services."""
