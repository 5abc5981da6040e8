"""
Edge package for the Satec PM180 power-meter pipeline.

Reads register blocks from PM180 meters over Modbus TCP, decodes them into
engineering-unit snapshots with a rolling 15-minute power average, and
reduces the snapshots of a whole fleet through declarative aggregation ops.

CHANGELOG:
- 2026-10-19: Initial creation (STORY-001)

TODO:
- None
"""
