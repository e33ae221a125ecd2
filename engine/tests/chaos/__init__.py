"""
Chaos/failure injection testing suite.

Drives the benchmark components against misbehaving systems under test:
- Tier 1: Transport faults (refused connections, timeouts, 429, 5xx)
- Tier 2: Injected operation faults (scripted, seeded, rate-limited)
- Tier 4: Crash recovery (lost acknowledgements, failed restarts)
"""
