"""Core analysis pipeline: extraction, graph, state flow, detectors and aggregation."""
