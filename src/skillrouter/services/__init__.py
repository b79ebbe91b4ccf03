"""External collaborators: skill store, confirmation state, completion, web lookup."""
