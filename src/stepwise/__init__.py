"""Stepwise - declarative resource provisioning with ledger-driven teardown."""

__version__ = "0.3.0"
