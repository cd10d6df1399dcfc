# Task board: drag-and-drop board engine, task stores, and the application shell
#
# Components:
#   schema.py     - Data model (Task, Category, TaskStatus, TaskPriority, columns)
#   store.py      - SQLite local cache (fallback for the remote store)
#   remote.py     - REST clients for the hosted task/category tables
#   fallback.py   - Remote-first task store with transparent local fallback
#   auth.py       - Session state machine and hosted auth client
#   geometry.py   - Rectangles and the layered collision policy
#   sensors.py    - Input modes and drag activation constraints
#   autoscroll.py - Edge auto-scroll during a drag session
#   feedback.py   - Haptic feedback notifier
#   items.py      - Draggable items and drop targets
#   board.py      - Board orchestrator (drag session state machine, intents)
#   events.py     - Event bridge (subscribe / emit)
#   shell.py      - Application shell (authoritative task list)
#   config.py     - YAML + environment configuration
