# This module handles conversation context for a thread

# +---------------------------+
# |      Summary              |   (Condensed, replaces pruned history)
# |---------------------------|
# | Everything summarized     |
# | so far, as one text       |
# +---------------------------+

# +---------------------------+
# |      Live messages        |   (Recent, verbatim, bounded)
# |---------------------------|
# | User / assistant turns    |
# | Tool calls and results    |
# +---------------------------+

#    \    /
#     \  /
#      \/
# +--------------------------------+
# |           Prompt               |   (Assembled per generation)
# |--------------------------------|
# | Persona system prompt          |
# |   + speaker and intimacy       |
# | Summary as a system message    |
# | Live messages                  |
# +--------------------------------+
#         |
#         v
#   [text / vision model]----

# Gap reset: after a long silence the summary and live messages are dropped
# and the thread starts over from the message that just arrived.
