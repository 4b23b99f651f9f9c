"""
Identity store query layer.

Read-side data access over a normalized user-identity schema: users, roles,
organization units and the join records relating them.
"""
