"""Improvement cycle: run eval cases, judge, improve the prompt, repeat.

``RoundController`` owns the loop; collaborators (agent factory, judge,
improver, decision callback) are plain objects or callables, sync or async.
Rounds can be persisted as a JSON ``CycleHistory`` and run under Prefect.
"""
