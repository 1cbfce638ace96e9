"""
Print Queue Test Suite.

- Invariant tests (single printer, active uid uniqueness, FIFO, retry bounds)
- Persistence tests (JobStore atomicity, backoff gate, history)
- State transition tests (cancel, manual retry, intervention)
- Execution path tests (retry then success, exhaustion, capacity, timeout)
- Event bus and retry policy tests
"""
