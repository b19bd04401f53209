"""Presence-aware room broadcast and notification fan-out for cohort chat."""
