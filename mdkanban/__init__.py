# Markdown kanban: task files on disk, ordered per status directory
#
# Components:
#   schema.py     - Data model (Task, TaskStatus, TaskTag, AcceptanceCriterion)
#   codec.py      - Markdown parse/serialize for task files
#   order.py      - Per-status order index files (_order.json)
#   migration.py  - One-time upgrade from numbered filenames to stable IDs
#   store.py      - Task directory store (list/create/update/move/reorder/delete)
#   projects.py   - Global project registry (~/.kanban-ui/config.json)
#   events.py     - Change notifier fan-out for SSE clients
#   watcher.py    - watchdog observer feeding the change notifier
#   config.py     - Runtime configuration (YAML + env)
