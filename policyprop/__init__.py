"""Governance policy models, watch filters and policy-automation reconciliation."""

__version__ = "0.1.0"