# State = everything needed to continue a thread on its next turn.

# Persisted per thread (Conversation):

# Live messages, in arrival order

# Summary of every message pruned so far

# Timestamp of the last committed turn (gap detection)

# Working state of a turn (TurnState) additionally carries the speaker,
# whether the turn has images, and how many tool rounds ran. It is never
# persisted; only its Conversation part is committed at the end of a turn.
