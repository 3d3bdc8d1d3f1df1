"""Paywall Service - x402 payments, custody holds, and task fulfillment for vendor APIs."""

__version__ = "0.1.0"
