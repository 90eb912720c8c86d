"""Infrastructure adapters: errors, logging, storage and directory transport."""
