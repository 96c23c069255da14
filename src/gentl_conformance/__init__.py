"""gentl-conformance: GenTL producer/camera conformance suite.

Exercises every combination of GenTL producer (.cti directory), GenICam
camera and video format through one consumer-side acquisition API, caches
per-device hardware specifications, and aggregates results keyed by
configuration.
"""

__version__ = "0.1.0"
