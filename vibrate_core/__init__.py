# =============================================================================
# vibrate_core/__init__.py
# Vibration Measurement Data Core
# =============================================================================
"""
Local-first storage, Supabase sync and trend analysis for daily equipment
vibration readings.
"""

__version__ = "0.1.0"
