"""
Stackwork Test Suite

This directory contains tests for the Stackwork engine:
- Unit tests for outputs, resources, the dependency graph and exports
- Scheduler tests for ordering, concurrency and failure propagation
- End-to-end tests for programs, the core pipeline and the CLI
"""
