"""
Telemetry pipeline: aggregation, scoring and distribution.

Import from the submodules (models, scoring, aggregator, hub); provider
adapters import telemetry.models, so this package stays import-free.
"""
