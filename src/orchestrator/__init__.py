"""Orchestrator package for stage flavor orchestration.

Selects which Flavors of a Stage run, decides how they run, fans them out
to a caller-supplied executor and merges their outputs, recording every
judgment in an auditable decision log.
"""
