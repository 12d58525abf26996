# Run state = everything the graph needs to continue or audit one user turn.

# It is "the NOW" for the run:

# The active phase and the plan/task working set

# Which tools have been dispatched, with their inputs and outputs

# Control flags (requires_validation, is_completed)

# Global and per-phase iteration counters, with their immutable caps

# The pending error, if any, which routes the next step to recovery
