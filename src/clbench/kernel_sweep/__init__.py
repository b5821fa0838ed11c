"""OpenCL kernel sweep benchmark.

Drives one OpenCL device through an inner-work (iteration count) sweep and/or a
parallelism (work-item count) sweep, timing every launch with the device's own
profiling clock. Results stream to stdout and can be exported to a validated
results.json and rendered as a Markdown report.
"""

from __future__ import annotations
