"""
PURPOSE: Webhook module for TV Scanner. Handles inbound TradingView alerts.

Provides payload normalization, replay suppression and the processor that
feeds accepted alerts into the consolidated alert store.
"""
