"""Atelier fulfillment: label-encoded order lifecycle, escalation and carrier reconciliation."""

__version__ = "0.1.0"
