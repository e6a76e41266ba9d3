"""Domain layer (pure logic).

- Keep round rules and calculations here: difficulty, click timing,
  prize pool and device quotas.
- Avoid I/O: no files, no event loop, no logging configuration.
- Prefer deterministic functions (time/random passed in as arguments).
"""
