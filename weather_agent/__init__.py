"""
Weather Agent - Kalshi Temperature Market Trading Agent

Runs one unattended trading cycle per invocation: ensemble weather forecasts
against KXHIGH daily-high contracts, with hard risk limits and a crash-safe
trade ledger.
"""

__version__ = "0.2.0"
