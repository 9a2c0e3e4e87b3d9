"""Work loop that drives an external CLI coding agent through tasks.json.

Why files instead of a database or queue?
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
The task list is shared with the agent itself: the agent reads it to
understand the plan and may append new tasks while it works. A plain JSON
file in the project directory is the one format every agent CLI can read
and edit with its own tools, so the loop treats ``tasks.json`` as the
source of truth and reloads it before every decision.

Loop-private progress (iteration counter, active agent, pause/stop status)
lives separately in ``.ralph/state.json`` so the two documents never
compete for the same fields. Both are written with write-temp-then-rename;
concurrent writers resolve as last-writer-wins.
"""
