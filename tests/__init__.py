"""
Tests for the procedural plant generator

This package contains tests for:
- Stem graph editing, paths and leaves (unit/core)
- Light volume and growth allocators (unit/spatial, unit/ops)
- Mesh synthesis, branch collars and skinning (unit/mesh)
- End-to-end growth and export (integration)
- Import and OperationReport contracts (contract)
"""
