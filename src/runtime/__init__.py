"""Runtime subsystem — artifacts, process table, health inference, cache, loop control."""
