"""Execution hosts: drive one unit of work to one terminal outcome.

``SimpleExecutionHost`` runs work that returns a value,
``StreamingExecutionHost`` runs work that emits ordered events before its
value. Both share cancellation through ``CancellationToken``, run teardown
hooks exactly once and always attach an ``ExecutionSummary`` to the result.
"""
