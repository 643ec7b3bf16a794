"""Hot node: tracks locally pinned content, validates it, replicates it to a
durable target and reclaims local storage once replication is confirmed."""

__version__ = "0.1.0"
