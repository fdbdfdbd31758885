"""Task coordination: progress parsing, events, registry and scheduling."""
