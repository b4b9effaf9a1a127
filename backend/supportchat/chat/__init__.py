"""Real-time chat core.

Provides:
    - ChatService: message lifecycle (create, edit, soft delete, mark read).
    - BroadcastRouter: room-scoped and global event delivery.
    - check_edit / check_delete: stateless mutation policy.
    - resolve_room: deterministic room keys for (customer, admin) pairs.
"""
