"""Diagnostic dialogue controller -- turn-by-turn question selection.

Decides the single next question for an automotive diagnostic
conversation: locks established facts, routes into a fixed domain,
runs deterministic sub-flows (misfire) and make-specific overlays.

Natural-language phrasing, vehicle extraction and VIN lookup are
pluggable capabilities; the control decisions never depend on them.
"""

__version__ = "0.1.0"
