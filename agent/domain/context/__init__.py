# This module handles context assembly for the decision services

# +---------------------+
# |      Memory         |   (Carried as bounded free text)
# |---------------------|
# | Retrieved memory    |
# | Working memory      |
# +---------------------+

# +---------------------+
# |      State          |   (Current run, see state/)
# |---------------------|
# | Phase + counters    |
# | Plan / active task  |
# | Message log         |
# | Tool audit trail    |
# +---------------------+

#    \    /
#     \  /
#      \/
# +------------------------------+
# |           Context            |   (Built per decision by ContextBuilder)
# |------------------------------|
# | User query + plan            |
# | Chat / execution history     |
# | Failed task + error details  |
# | Tool catalogue               |
# +------------------------------+
#         |
#         v
#   [Planner / Executor / Recovery / Validation service]
