"""
PerfLab service package.

Modules:
- main: FastAPI app and route wiring
- caching: cache-aside store and cache key construction
- bottlenecks: named bottleneck scenarios
- resources: users, products and orders handlers
- persistence: in-process document store
- instrumentation: metric declarations
"""
